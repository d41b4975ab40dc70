from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class DistributorState(SQLModel, table=True):
    __tablename__ = "distributor_states"
    name: str = Field(primary_key=True)
    contract_address: str
    merkle_root: Optional[str] = None
    paused: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


class RewardClaim(SQLModel, table=True):
    __tablename__ = "reward_claims"
    id: Optional[int] = Field(default=None, primary_key=True)
    distributor_name: str = Field(index=True, foreign_key="distributor_states.name")
    account: str = Field(index=True)
    token: str
    claimed: str
