from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ProviderInfo(BaseModel):
    address: str
    identifier: str
    balance: int
    rate_of_return: int
    is_active: bool = False


class VaultBase(BaseModel):
    vault_id: str
    name: str
    contract_address: str
    asset_address: str
    asset_symbol: str
    treasury: str
    governor: str
    min_deposit_amount: int
    withdraw_fee_rate: int
    user_deposit_limit: Optional[int] = None
    vault_deposit_limit: Optional[int] = None


# Properties to return to client
class Vault(VaultBase):
    model_config = ConfigDict(from_attributes=True)

    total_assets: int
    total_supply: int
    vault_capacity: int
    active_provider: Optional[str] = None
    setup_completed: bool
    deposit_paused: bool
    withdraw_paused: bool
    providers: List[ProviderInfo] = []


class Position(BaseModel):
    vault_id: str
    account: str
    shares: int
    assets: int
    max_deposit: int
    max_withdraw: int
    max_redeem: int


class DepositRequest(BaseModel):
    assets: int
    receiver: str


class MintRequest(BaseModel):
    shares: int
    receiver: str


class WithdrawRequest(BaseModel):
    assets: int
    receiver: str
    owner: str


class RedeemRequest(BaseModel):
    shares: int
    receiver: str
    owner: str


class VaultActionResponse(BaseModel):
    vault_id: str
    assets: int
    shares: int


class PermitRequest(BaseModel):
    owner: str
    spender: str
    shares: int
    deadline: int
    # 65-byte hex signature over the typed data from /permit-data
    signature: str


class PermitData(BaseModel):
    owner: str
    nonce: int
    typed_data: dict


class Allowance(BaseModel):
    vault_id: str
    owner: str
    spender: str
    shares: int
