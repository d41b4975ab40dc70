"""Error taxonomy shared by every service.

Each error carries a stable ``error_code`` that callers can match on, and belongs to
one of four categories: bad input, missing authorization, a state precondition that
does not hold, or a failing external call.
"""


class VaultServiceError(Exception):
    category = "error"
    error_code = "VaultService__Error"

    def __init__(self, error_message: str = "", *, error_code: str | None = None):
        if error_code is not None:
            self.error_code = error_code
        self.error_message = error_message or self.error_code
        super().__init__(f"{self.error_code}: {self.error_message}")


class InputValidationError(VaultServiceError):
    category = "validation"


class AuthorizationError(VaultServiceError):
    category = "authorization"


class StateError(VaultServiceError):
    category = "state"


class ExternalCallError(VaultServiceError):
    category = "external_call"


# Input validation


class InvalidInput(InputValidationError):
    error_code = "InterestVault__InvalidInput"


class AmountLessThanMin(InputValidationError):
    error_code = "InterestVault__AmountLessThanMin"


class DepositMoreThanMax(InputValidationError):
    error_code = "InterestVault__DepositMoreThanMax"


class ExcessRebalanceFee(InputValidationError):
    error_code = "InterestVault__ExcessRebalanceFee"


class InvalidAssetAmount(InputValidationError):
    error_code = "VaultManager__InvalidAssetAmount"


class InvalidProof(InputValidationError):
    error_code = "RewardsDistributor__InvalidProof"


class InvalidDelay(InputValidationError):
    error_code = "Timelock__InvalidDelay"


class InvalidEta(InputValidationError):
    error_code = "Timelock__InvalidEta"


class InsufficientBalance(InputValidationError):
    error_code = "AssetToken__InsufficientBalance"


class InsufficientAllowance(InputValidationError):
    error_code = "AssetToken__InsufficientAllowance"


class InvalidTokenAmount(InputValidationError):
    error_code = "InterestLocker__InvalidTokenAmount"


class TokenNotSupported(InputValidationError):
    error_code = "InterestLocker__TokenNotSupported"


class NotEnoughLocked(InputValidationError):
    error_code = "InterestLocker__NotEnoughLocked"


class AddressZero(InputValidationError):
    error_code = "InterestLocker__AddressZero"


# Authorization


class MissingRole(AuthorizationError):
    error_code = "AccessManager__MissingRole"

    def __init__(self, role_name: str, account: str):
        suffix = "".join(part.capitalize() for part in role_name.replace("_ROLE", "").split("_"))
        super().__init__(
            f"{account} is missing {role_name}",
            error_code=f"AccessManager__CallerIsNot{suffix}",
        )
        self.role_name = role_name
        self.account = account


class CallerIsNotGovernor(AuthorizationError):
    error_code = "InterestVault__CallerIsNotTimelock"


class NotOwner(AuthorizationError):
    error_code = "Timelock__NotOwner"


class CallerIsNotTimelock(AuthorizationError):
    error_code = "Timelock__CallerIsNotTimelock"


class CallerIsNotAccount(AuthorizationError):
    error_code = "RewardsDistributor__CallerIsNotAccount"


class InvalidSignature(AuthorizationError):
    error_code = "VaultPermit__InvalidSignature"


class CallerIsNotOwner(AuthorizationError):
    error_code = "InterestLocker__CallerIsNotOwner"


# State preconditions


class VaultAlreadySetUp(StateError):
    error_code = "InterestVault__VaultAlreadyInitialized"


class ActionPaused(StateError):
    error_code = "VaultPausable__ActionPaused"


class ActionNotPaused(StateError):
    error_code = "VaultPausable__ActionNotPaused"


class ProviderNotRegistered(StateError):
    error_code = "InterestVault__InvalidProvider"


class TransactionNotQueued(StateError):
    error_code = "Timelock__TransactionNotQueued"


class TransactionLocked(StateError):
    error_code = "Timelock__TransactionLocked"


class TransactionExpired(StateError):
    error_code = "Timelock__TransactionExpired"


class AlreadyClaimed(StateError):
    error_code = "RewardsDistributor__AlreadyClaimed"


class EnforcedPause(StateError):
    error_code = "EnforcedPause"


class ExpectedPause(StateError):
    error_code = "ExpectedPause"


class UnknownVault(StateError):
    error_code = "VaultManager__UnknownVault"


class VaultHoldsNoAssets(StateError):
    error_code = "InterestVault__NoAssets"


class ExpiredDeadline(StateError):
    error_code = "VaultPermit__ExpiredDeadline"


# External calls


class ProviderCallFailed(ExternalCallError):
    error_code = "InterestVault__ProviderCallFailed"


class TransactionExecutionReverted(ExternalCallError):
    error_code = "Timelock__TransactionExecutionReverted"
