from fastapi import APIRouter

import schemas
from api.api_v1.deps import CallerDep, ProtocolDep, SessionDep
from services.state_store import save_vault

router = APIRouter()


@router.post("/rebalance", response_model=schemas.RebalanceResponse)
def rebalance_vault(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, req: schemas.RebalanceRequest):
    success = protocol.manager.rebalance_vault(
        req.vault_id,
        req.assets,
        req.from_provider,
        req.to_provider,
        req.fee,
        req.activate_to,
        caller=caller,
    )
    vault = protocol.vault(req.vault_id)
    save_vault(session, vault)
    session.commit()
    return schemas.RebalanceResponse(
        vault_id=req.vault_id,
        success=success,
        total_assets=vault.total_assets(),
        active_provider=vault.active_provider,
    )
