from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class TimelockState(SQLModel, table=True):
    __tablename__ = "timelock_states"
    name: str = Field(primary_key=True)
    contract_address: str
    owner: str
    pending_owner: Optional[str] = None
    delay: int
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


class PendingTransaction(SQLModel, table=True):
    __tablename__ = "timelock_pending_transactions"
    tx_hash: str = Field(primary_key=True)
    timelock_name: str = Field(index=True, foreign_key="timelock_states.name")
    target: str
    value: str
    signature: str
    # canonical JSON of the positional call data
    data: str
    eta: int
