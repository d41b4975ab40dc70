from pydantic import BaseModel


class RebalanceRequest(BaseModel):
    vault_id: str
    assets: int
    from_provider: str
    to_provider: str
    fee: int = 0
    activate_to: bool = False


class RebalanceResponse(BaseModel):
    vault_id: str
    success: bool
    total_assets: int
    active_provider: str
