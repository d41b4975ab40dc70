from typing import List

from pydantic import BaseModel


class LockerInfo(BaseModel):
    contract_address: str
    owner: str
    tokens: List[str]


class LockRequest(BaseModel):
    token: str
    amount: int


class LockedBalance(BaseModel):
    account: str
    token: str
    locked: int
    total_locked: int


class TokensUpdate(BaseModel):
    tokens: List[str]
