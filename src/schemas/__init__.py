from .vault import (
    Allowance,
    DepositRequest,
    MintRequest,
    PermitData,
    PermitRequest,
    Position,
    ProviderInfo,
    RedeemRequest,
    Vault,
    VaultActionResponse,
    VaultBase,
    WithdrawRequest,
)
from .manager import RebalanceRequest, RebalanceResponse
from .governance import TimelockTransaction, TimelockTransactionResponse
from .rewards import ClaimRequest, ClaimResponse, ClaimStatus, RootInfo, RootUpdate
from .locker import LockedBalance, LockerInfo, LockRequest, TokensUpdate
