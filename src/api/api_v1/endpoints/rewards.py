from fastapi import APIRouter

import schemas
from api.api_v1.deps import CallerDep, ProtocolDep, SessionDep
from services.state_store import save_distributor

router = APIRouter()


@router.get("/root", response_model=schemas.RootInfo)
async def get_root(protocol: ProtocolDep):
    distributor = protocol.distributor
    return schemas.RootInfo(distributor=distributor.address, root=distributor.merkle_root, paused=distributor.paused)


@router.post("/root", response_model=schemas.RootInfo)
def update_root(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, req: schemas.RootUpdate):
    distributor = protocol.distributor
    distributor.update_root(req.root, caller=caller)
    save_distributor(session, distributor)
    session.commit()
    return schemas.RootInfo(distributor=distributor.address, root=distributor.merkle_root, paused=distributor.paused)


@router.get("/claims/{account}/{token}", response_model=schemas.ClaimStatus)
async def get_claimed(protocol: ProtocolDep, account: str, token: str):
    claimed = protocol.distributor.claimed(account, token)
    return schemas.ClaimStatus(account=account, token=token, claimed=claimed)


@router.post("/claim", response_model=schemas.ClaimResponse)
def claim(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, req: schemas.ClaimRequest):
    distributor = protocol.distributor
    amount = distributor.claim(req.account, req.token, req.claimable_total, req.proof, caller=caller)
    save_distributor(session, distributor)
    session.commit()
    return schemas.ClaimResponse(
        account=req.account,
        token=req.token,
        amount=amount,
        claimed=distributor.claimed(req.account, req.token),
    )
