import logging
import threading

from core.constants import MAX_UINT256
from core.errors import InsufficientAllowance, InsufficientBalance, InvalidInput
from services.events import EventLog
from utils.atomic import Checkpointable, critical_section
from utils.web3_utils import derive_address, require_address, to_address

logger = logging.getLogger(__name__)


class AssetToken(Checkpointable):
    """In-process fungible token with balances and allowances."""

    _checkpoint_attrs = ("_balances", "_allowances", "total_supply")
    _lock_rank = 2

    def __init__(self, symbol: str, decimals: int, *, address: str | None = None):
        self.symbol = symbol
        self.decimals = decimals
        self.address = to_address(address) if address else derive_address(f"token:{symbol}")
        self.lock = threading.RLock()
        self.events = EventLog(symbol, logger)
        self.total_supply = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[str, dict[str, int]] = {}

    def participants(self):
        return (self, self.events)

    def units(self, amount: int | float) -> int:
        return int(amount * 10**self.decimals)

    def balance_of(self, account: str) -> int:
        return self._balances.get(to_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(to_address(owner), {}).get(to_address(spender), 0)

    @critical_section
    def mint(self, to: str, amount: int) -> None:
        to = require_address(to)
        self._check_amount(amount)
        self._balances[to] = self._balances.get(to, 0) + amount
        self.total_supply += amount
        self.events.emit("Transfer", sender=None, to=to, amount=amount)

    @critical_section
    def approve(self, owner: str, spender: str, amount: int) -> bool:
        owner, spender = require_address(owner), require_address(spender)
        self._check_amount(amount)
        self._allowances.setdefault(owner, {})[spender] = amount
        self.events.emit("Approval", owner=owner, spender=spender, amount=amount)
        return True

    @critical_section
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._move(require_address(sender), require_address(to), amount)
        return True

    @critical_section
    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        spender, owner = require_address(spender), require_address(owner)
        self._spend_allowance(owner, spender, amount)
        self._move(owner, require_address(to), amount)
        return True

    def _spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if current < amount:
            raise InsufficientAllowance(f"{spender} may spend {current} of {owner}, needs {amount}")
        self._allowances[owner][spender] = current - amount

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._check_amount(amount)
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(f"{sender} holds {balance} {self.symbol}, needs {amount}")
        self._balances[sender] = balance - amount
        self._balances[to] = self._balances.get(to, 0) + amount
        self.events.emit("Transfer", sender=sender, to=to, amount=amount)

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise InvalidInput(f"Invalid amount {amount!r}")
