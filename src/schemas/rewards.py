from typing import List, Optional

from pydantic import BaseModel


class RootUpdate(BaseModel):
    root: str


class RootInfo(BaseModel):
    distributor: str
    root: Optional[str] = None
    paused: bool


class ClaimRequest(BaseModel):
    account: str
    token: str
    claimable_total: int
    proof: List[str]


class ClaimResponse(BaseModel):
    account: str
    token: str
    amount: int
    claimed: int


class ClaimStatus(BaseModel):
    account: str
    token: str
    claimed: int
