import logging
import threading
from typing import Protocol, runtime_checkable

from core.constants import RAY, SECONDS_PER_YEAR
from services.asset_token import AssetToken
from utils.atomic import Checkpointable, critical_section
from utils.web3_utils import derive_address, to_address

logger = logging.getLogger(__name__)


@runtime_checkable
class ProviderAdapter(Protocol):
    """Capability every yield backend exposes to a vault.

    The vault moves funds into the adapter before calling ``deposit`` and checks its own
    balance after ``withdraw``; adapters never see ledger state.
    """

    address: str

    def identifier(self) -> str: ...

    def deposit(self, amount: int, vault: str) -> bool: ...

    def withdraw(self, amount: int, vault: str) -> bool: ...

    def balance_of(self, user: str, vault: str) -> int: ...

    def rate_of_return(self, vault: str) -> int: ...


class InMemoryProvider(Checkpointable):
    """Lending backend kept in process memory, used for tests and the demo deployment."""

    _checkpoint_attrs = ("_deposits", "_rewards", "rate")
    _checkpoint_refs = ("_reward_tokens",)
    _lock_rank = 1

    def __init__(self, name: str, asset: AssetToken, *, rate: int = 0):
        self.name = name
        self.asset = asset
        self.rate = rate
        self.address = derive_address(f"provider:{name}:{asset.address}")
        self.lock = threading.RLock()
        self._deposits: dict[str, int] = {}
        # vault -> token address -> amount
        self._rewards: dict[str, dict[str, int]] = {}
        self._reward_tokens: dict[str, AssetToken] = {}

    def identifier(self) -> str:
        return self.name

    def _held(self) -> int:
        return sum(self._deposits.values())

    def deposit(self, amount: int, vault: str) -> bool:
        vault = to_address(vault)
        unaccounted = self.asset.balance_of(self.address) - self._held()
        if amount <= 0 or unaccounted < amount:
            logger.warning("%s: deposit of %s for %s not funded", self.name, amount, vault)
            return False
        self._deposits[vault] = self._deposits.get(vault, 0) + amount
        return True

    def withdraw(self, amount: int, vault: str) -> bool:
        vault = to_address(vault)
        if amount <= 0 or self._deposits.get(vault, 0) < amount:
            return False
        self._deposits[vault] -= amount
        self.asset.transfer(self.address, vault, amount)
        return True

    def balance_of(self, user: str, vault: str) -> int:
        return self._deposits.get(to_address(user), 0)

    def rate_of_return(self, vault: str) -> int:
        return self.rate

    @critical_section
    def accrue(self, seconds: int) -> int:
        """Credit interest for ``seconds`` at the current annual rate. Returns the total accrued."""
        accrued = 0
        for vault, balance in list(self._deposits.items()):
            interest = balance * self.rate * seconds // (RAY * SECONDS_PER_YEAR)
            if interest:
                self.asset.mint(self.address, interest)
                self._deposits[vault] = balance + interest
                accrued += interest
        return accrued

    def fund_rewards(self, vault: str, token: AssetToken, amount: int) -> None:
        with self.lock:
            token.mint(self.address, amount)
            self._reward_tokens[token.address] = token
            pending = self._rewards.setdefault(to_address(vault), {})
            pending[token.address] = pending.get(token.address, 0) + amount

    @property
    def reward_tokens(self) -> list[AssetToken]:
        return list(self._reward_tokens.values())

    def harvest(self, vault: str) -> list[tuple[AssetToken, int]]:
        vault = to_address(vault)
        harvested = []
        for token_address, amount in sorted(self._rewards.pop(vault, {}).items()):
            token = self._reward_tokens[token_address]
            token.transfer(self.address, vault, amount)
            harvested.append((token, amount))
        return harvested

    def participants(self):
        return (self, self.asset, self.asset.events)

    def __repr__(self) -> str:
        return f"InMemoryProvider({self.name!r}, {self.address})"
