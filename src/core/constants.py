import enum

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_HASH = "0x" + "00" * 32

MAX_UINT256 = 2**256 - 1

# 18 decimals fixed point for fee rates, 0.1% == 10**15
PRECISION_CONSTANT = 10**18
MAX_WITHDRAW_FEE = 5 * 10**16  # 5%
MAX_REBALANCE_FEE = 2 * 10**17  # 20%

# Rates of return are annualized and expressed in ray
RAY = 10**27
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Timelock bounds, in seconds
MIN_DELAY = 30 * 60
MAX_DELAY = 30 * 24 * 60 * 60
GRACE_PERIOD = 14 * 24 * 60 * 60


def _role_id(name: str) -> str:
    return Web3.to_hex(Web3.keccak(text=name))


ADMIN_ROLE = ZERO_HASH
OPERATOR_ROLE = _role_id("OPERATOR_ROLE")
EXECUTOR_ROLE = _role_id("EXECUTOR_ROLE")
ROOT_UPDATER_ROLE = _role_id("ROOT_UPDATER_ROLE")

ROLE_NAMES = {
    ADMIN_ROLE: "ADMIN_ROLE",
    OPERATOR_ROLE: "OPERATOR_ROLE",
    EXECUTOR_ROLE: "EXECUTOR_ROLE",
    ROOT_UPDATER_ROLE: "ROOT_UPDATER_ROLE",
}


class PausableAction(int, enum.Enum):
    DEPOSIT = 0
    WITHDRAW = 1
