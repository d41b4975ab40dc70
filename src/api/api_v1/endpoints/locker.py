from fastapi import APIRouter

import schemas
from api.api_v1.deps import CallerDep, ProtocolDep
from services.interest_locker import InterestLocker

router = APIRouter()


def _info(locker: InterestLocker) -> schemas.LockerInfo:
    return schemas.LockerInfo(contract_address=locker.address, owner=locker.owner, tokens=locker.get_tokens())


def _balance(locker: InterestLocker, account: str, token: str) -> schemas.LockedBalance:
    return schemas.LockedBalance(
        account=account,
        token=token,
        locked=locker.account_locked(account, token),
        total_locked=locker.total_locked(token),
    )


@router.get("/", response_model=schemas.LockerInfo)
async def get_locker(protocol: ProtocolDep):
    return _info(protocol.locker)


@router.get("/{account}/{token}", response_model=schemas.LockedBalance)
async def get_locked(protocol: ProtocolDep, account: str, token: str):
    return _balance(protocol.locker, account, token)


@router.post("/lock", response_model=schemas.LockedBalance)
def lock_tokens(protocol: ProtocolDep, caller: CallerDep, req: schemas.LockRequest):
    locker = protocol.locker
    with locker.lock:
        locker.lock_tokens(req.token, req.amount, caller=caller)
        return _balance(locker, caller, req.token)


@router.post("/unlock", response_model=schemas.LockedBalance)
def unlock_tokens(protocol: ProtocolDep, caller: CallerDep, req: schemas.LockRequest):
    locker = protocol.locker
    with locker.lock:
        locker.unlock_tokens(req.token, req.amount, caller=caller)
        return _balance(locker, caller, req.token)


@router.post("/tokens", response_model=schemas.LockerInfo)
def set_tokens(protocol: ProtocolDep, caller: CallerDep, req: schemas.TokensUpdate):
    locker = protocol.locker
    with locker.lock:
        locker.set_tokens(req.tokens, caller=caller)
        return _info(locker)
