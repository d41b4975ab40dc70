from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


# amounts are stored as decimal strings, they do not fit in a BIGINT
class VaultStateBase(SQLModel):
    vault_id: str = Field(primary_key=True)
    contract_address: str
    asset_address: str
    governor: str
    treasury: str
    min_deposit_amount: str
    withdraw_fee_rate: str
    user_deposit_limit: Optional[str] = None
    vault_deposit_limit: Optional[str] = None
    active_provider: Optional[str] = None
    setup_completed: bool = False
    deposit_paused: bool = True
    withdraw_paused: bool = False


class VaultState(VaultStateBase, table=True):
    __tablename__ = "vault_states"
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


class VaultProvider(SQLModel, table=True):
    __tablename__ = "vault_providers"
    id: Optional[int] = Field(default=None, primary_key=True)
    vault_id: str = Field(index=True, foreign_key="vault_states.vault_id")
    position: int
    provider_address: str
