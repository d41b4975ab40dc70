from fastapi import APIRouter

from api.api_v1.endpoints import (
    governance,
    locker,
    manager,
    rewards,
    vaults,
)

api_router = APIRouter()

api_router.include_router(
    vaults.router, prefix="/vaults", tags=["vaults"]
)
api_router.include_router(
    manager.router, prefix="/manager", tags=["manager"]
)
api_router.include_router(
    governance.router, prefix="/governance", tags=["governance"]
)
api_router.include_router(
    rewards.router, prefix="/rewards", tags=["rewards"]
)
api_router.include_router(
    locker.router, prefix="/locker", tags=["locker"]
)
api_router.redirect_slashes = False
