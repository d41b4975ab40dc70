from typing import Any, List

from pydantic import BaseModel


class TimelockTransaction(BaseModel):
    target: str
    value: int = 0
    # empty signature means the first data item is the method name
    signature: str = ""
    data: List[Any] = []
    eta: int


class TimelockTransactionResponse(BaseModel):
    tx_hash: str
    queued: bool
