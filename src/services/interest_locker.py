import logging
import threading
from typing import Any, Sequence

from core.constants import ZERO_ADDRESS
from core.errors import (
    AddressZero,
    CallerIsNotOwner,
    InvalidInput,
    InvalidTokenAmount,
    NotEnoughLocked,
    TokenNotSupported,
)
from services.events import EventLog
from utils.atomic import Checkpointable, critical_section
from utils.web3_utils import derive_address, require_address, to_address

logger = logging.getLogger(__name__)


class InterestLocker(Checkpointable):
    """Escrow where holders lock vault shares so off-chain accounting can credit them interest.

    Only tokens in the supported list can be locked. A token dropped from the list can
    still be unlocked by whoever locked it.
    """

    _checkpoint_attrs = ("owner", "_total_locked", "_account_locked")
    _checkpoint_refs = ("_tokens", "_known_tokens")

    def __init__(self, owner: str, tokens: Sequence[Any], *, name: str = "InterestLocker"):
        self.name = name
        self.address = derive_address(f"interest-locker:{name}")
        self.owner = require_address(owner)
        self.lock = threading.RLock()
        self.events = EventLog(name, logger)
        # every token ever supported, by address
        self._known_tokens: dict[str, Any] = {}
        self._total_locked: dict[str, int] = {}
        # account -> token -> amount
        self._account_locked: dict[str, dict[str, int]] = {}
        # supported tokens in the order they were set
        self._tokens: list[str] = self._resolve_tokens(tokens)

    def participants(self):
        tokens = [part for token in self._known_tokens.values() for part in (token, token.events)]
        return (self, self.events, *tokens)

    def get_tokens(self) -> list[str]:
        return list(self._tokens)

    def is_supported(self, token) -> bool:
        try:
            return to_address(token) in self._tokens
        except InvalidInput:
            return False

    def total_locked(self, token) -> int:
        return self._total_locked.get(to_address(token), 0)

    def account_locked(self, account: str, token) -> int:
        return self._account_locked.get(to_address(account), {}).get(to_address(token), 0)

    @critical_section
    def lock_tokens(self, token, amount: int, *, caller: str) -> None:
        account = require_address(caller)
        self._check_amount(amount)
        address = to_address(token)
        if address not in self._tokens:
            raise TokenNotSupported(f"{address} cannot be locked")

        self._known_tokens[address].transfer_from(account, self.address, amount, caller=self.address)
        locked = self._account_locked.setdefault(account, {})
        locked[address] = locked.get(address, 0) + amount
        self._total_locked[address] = self.total_locked(address) + amount
        self.events.emit("TokensLocked", account=account, token=address, amount=amount)

    @critical_section
    def unlock_tokens(self, token, amount: int, *, caller: str) -> None:
        account = require_address(caller)
        self._check_amount(amount)
        address = to_address(token)
        locked = self.account_locked(account, address)
        if amount > locked:
            raise NotEnoughLocked(f"{account} has {locked} of {address} locked, asked for {amount}")

        self._account_locked[account][address] = locked - amount
        self._total_locked[address] -= amount
        self._known_tokens[address].transfer(account, amount, caller=self.address)
        self.events.emit("TokensUnlocked", account=account, token=address, amount=amount)

    @critical_section
    def set_tokens(self, tokens: Sequence[Any], *, caller: str) -> None:
        self._require_owner(caller)
        self._tokens = self._resolve_tokens(tokens)
        self.events.emit("TokensChanged", tokens=list(self._tokens))

    @critical_section
    def transfer_ownership(self, new_owner: str, *, caller: str) -> None:
        self._require_owner(caller)
        previous, self.owner = self.owner, require_address(new_owner)
        self.events.emit("OwnershipTransferred", previous_owner=previous, new_owner=self.owner)

    def _resolve_tokens(self, tokens: Sequence[Any]) -> list[str]:
        resolved = []
        for token in tokens:
            address = to_address(token)
            if address == ZERO_ADDRESS:
                raise AddressZero("Token address is zero")
            if isinstance(token, str):
                if address not in self._known_tokens:
                    raise InvalidInput(f"No token known at {address}")
            elif not callable(getattr(token, "transfer_from", None)):
                raise InvalidInput(f"{token!r} is not a share token")
            else:
                self._known_tokens[address] = token
            if address in resolved:
                raise InvalidInput(f"Duplicate token {address}")
            resolved.append(address)
        return resolved

    def _require_owner(self, caller: str) -> None:
        if to_address(caller) != self.owner:
            raise CallerIsNotOwner(f"{caller} is not the locker owner")

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidTokenAmount(f"Invalid token amount {amount!r}")
