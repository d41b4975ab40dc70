from fastapi import APIRouter

import schemas
from api.api_v1.deps import CallerDep, ProtocolDep, SessionDep
from services.state_store import save_protocol
from services.timelock import transaction_key

router = APIRouter()


@router.post("/queue", response_model=schemas.TimelockTransactionResponse)
def queue_transaction(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, req: schemas.TimelockTransaction):
    timelock = protocol.timelock
    tx_hash = timelock.queue(req.target, req.value, req.signature, req.data, req.eta, caller=caller)
    save_protocol(session, protocol)
    return schemas.TimelockTransactionResponse(tx_hash=tx_hash, queued=timelock.is_queued(tx_hash))


@router.post("/execute", response_model=schemas.TimelockTransactionResponse)
def execute_transaction(
    session: SessionDep, protocol: ProtocolDep, caller: CallerDep, req: schemas.TimelockTransaction
):
    timelock = protocol.timelock
    timelock.execute(req.target, req.value, req.signature, req.data, req.eta, caller=caller)
    tx_hash = transaction_key(req.target, req.value, req.signature, req.data, req.eta)
    # the executed call may have changed any vault, persist everything
    save_protocol(session, protocol)
    return schemas.TimelockTransactionResponse(tx_hash=tx_hash, queued=timelock.is_queued(tx_hash))


@router.post("/cancel", response_model=schemas.TimelockTransactionResponse)
def cancel_transaction(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, req: schemas.TimelockTransaction):
    timelock = protocol.timelock
    tx_hash = timelock.cancel(req.target, req.value, req.signature, req.data, req.eta, caller=caller)
    save_protocol(session, protocol)
    return schemas.TimelockTransactionResponse(tx_hash=tx_hash, queued=timelock.is_queued(tx_hash))
