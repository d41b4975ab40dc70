from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings
from web3 import Web3

from core import constants


class Settings(BaseSettings):

    ENVIRONMENT_NAME: str = "Development"

    @property
    def is_production(self):
        return self.ENVIRONMENT_NAME == "Production"

    PROJECT_NAME: str = "Rebalancing Vault"
    API_V1_STR: str = "/api/v1"
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8001

    SQLALCHEMY_DATABASE_URI: str = "sqlite:///./vault_state.db"

    LOG_DIR: str = "~/logs"
    LOG_LEVEL: str = "INFO"

    # Seq log
    SEQ_SERVER_URL: Optional[str] = None
    SEQ_SERVER_API_KEY: Optional[str] = None

    # Demo deployment served by the API
    DEPLOYER_ADDRESS: str = "0x714E9446DDAc1B7051291B7E3E1730746128A9aF"
    TREASURY_ADDRESS: str = "0xc8a682F0991323777253ffa5fa6F19035685E723"
    ASSET_SYMBOL: str = "USDC"
    ASSET_DECIMALS: int = 6
    VAULT_IDS: List[str] = ["rUSDC"]
    PROVIDER_NAMES: List[str] = ["Aave_V3_Provider", "Compound_V3_Provider"]
    # 0.1%
    WITHDRAW_FEE_RATE: int = 10**15
    MIN_DEPOSIT_AMOUNT: int = 10**6
    USER_DEPOSIT_LIMIT: Optional[int] = None
    VAULT_DEPOSIT_LIMIT: Optional[int] = None
    TIMELOCK_DELAY: int = constants.MIN_DELAY
    # EIP-712 domain of share permits
    CHAIN_ID: int = 1

    @field_validator("DEPLOYER_ADDRESS", "TREASURY_ADDRESS", mode="before")
    def checksum_address(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError(f"Invalid address {v}")
        return Web3.to_checksum_address(v)

    @field_validator("VAULT_IDS", "PROVIDER_NAMES", mode="before")
    def split_names(cls, v):
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    @field_validator("WITHDRAW_FEE_RATE")
    def check_withdraw_fee(cls, v: int) -> int:
        if v > constants.MAX_WITHDRAW_FEE:
            raise ValueError("WITHDRAW_FEE_RATE above 5%")
        return v

    @field_validator("TIMELOCK_DELAY")
    def check_timelock_delay(cls, v: int) -> int:
        if v < constants.MIN_DELAY or v > constants.MAX_DELAY:
            raise ValueError("TIMELOCK_DELAY outside [MIN_DELAY, MAX_DELAY]")
        return v

    class Config:

        case_sensitive = True
        env_file = ".env"
        extra = "allow"


settings = Settings()
