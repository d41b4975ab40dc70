from sqlmodel import Field, SQLModel
from .vault_state import VaultProvider, VaultState, VaultStateBase
from .timelock_state import PendingTransaction, TimelockState
from .reward_claims import DistributorState, RewardClaim
