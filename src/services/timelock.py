import json
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

import pendulum

from core.constants import GRACE_PERIOD, MAX_DELAY, MIN_DELAY
from core.errors import (
    CallerIsNotTimelock,
    InvalidDelay,
    InvalidEta,
    InvalidInput,
    NotOwner,
    TransactionExecutionReverted,
    TransactionExpired,
    TransactionLocked,
    TransactionNotQueued,
)
from services.events import EventLog
from utils.atomic import Checkpointable, critical_section
from utils.web3_utils import canonical_json, derive_address, keccak_hex, require_address, to_address

logger = logging.getLogger(__name__)


def utc_timestamp() -> int:
    return pendulum.now("UTC").int_timestamp


@dataclass(frozen=True)
class QueuedTransaction:
    target: str
    value: int
    signature: str
    data: list
    eta: int

    @property
    def key(self) -> str:
        return transaction_key(self.target, self.value, self.signature, self.data, self.eta)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def transaction_key(target, value: int, signature: str, data, eta: int) -> str:
    payload = canonical_json([to_address(target), value, signature, data, eta])
    return keccak_hex(payload.encode())


def _normalize_data(data) -> list:
    # components referenced in call data are stored by address
    return json.loads(canonical_json(list(data or [])))


class Timelock(Checkpointable):
    """Delayed execution queue owning every dangerous configuration change.

    A transaction is identified by the hash of ``(target, value, signature, data, eta)``
    and may only run inside ``[eta, eta + GRACE_PERIOD]``. The delay itself and the owner
    can only be changed by transactions that went through the queue.
    """

    _checkpoint_attrs = ("queued", "delay", "owner", "pending_owner")
    _checkpoint_refs = ("_targets",)

    def __init__(
        self,
        owner: str,
        delay: int = MIN_DELAY,
        *,
        clock: Optional[Callable[[], int]] = None,
        name: str = "Timelock",
    ):
        self._validate_delay(delay)
        self.name = name
        self.address = derive_address(f"timelock:{name}")
        self.owner = require_address(owner)
        self.pending_owner: Optional[str] = None
        self.delay = delay
        self.clock = clock or utc_timestamp
        self.lock = threading.RLock()
        self.events = EventLog(name, logger)
        self.queued: dict[str, QueuedTransaction] = {}
        self._targets: dict[str, Any] = {self.address: self}

    def participants(self):
        return (self, self.events)

    def register_target(self, target: Any) -> str:
        address = require_address(target)
        self._targets[address] = target
        return address

    def is_queued(self, key: str) -> bool:
        return key in self.queued

    @critical_section
    def queue(self, target, value: int, signature: str, data, eta: int, *, caller: str) -> str:
        self._require_owner(caller)
        tx = self._build(target, value, signature, data, eta)
        now = self.clock()
        if eta < now + self.delay or eta > now + self.delay + GRACE_PERIOD:
            raise InvalidEta(f"eta {eta} is outside [{now + self.delay}, {now + self.delay + GRACE_PERIOD}]")
        if tx.target not in self._targets:
            self.register_target(target)
        key = tx.key
        self.queued[key] = tx
        self.events.emit("QueueTransaction", tx_hash=key, **tx.to_dict())
        return key

    @critical_section
    def cancel(self, target, value: int, signature: str, data, eta: int, *, caller: str) -> str:
        self._require_owner(caller)
        key = self._build(target, value, signature, data, eta).key
        tx = self.queued.pop(key, None)
        if tx is None:
            raise TransactionNotQueued(f"{key} is not queued")
        self.events.emit("CancelTransaction", tx_hash=key, **tx.to_dict())
        return key

    @critical_section
    def execute(self, target, value: int, signature: str, data, eta: int, *, caller: str) -> Any:
        self._require_owner(caller)
        key = self._build(target, value, signature, data, eta).key
        tx = self.queued.get(key)
        if tx is None:
            raise TransactionNotQueued(f"{key} is not queued")
        now = self.clock()
        if now < tx.eta:
            raise TransactionLocked(f"{key} unlocks at {tx.eta}, retry later")
        if now > tx.eta + GRACE_PERIOD:
            raise TransactionExpired(f"{key} expired at {tx.eta + GRACE_PERIOD}")

        del self.queued[key]
        method, args = self._resolve_call(tx)
        kwargs: dict[str, Any] = {"caller": self.address}
        if tx.value:
            kwargs["value"] = tx.value
        try:
            result = method(*args, **kwargs)
        except Exception as exc:
            raise TransactionExecutionReverted(f"{tx.signature or tx.data[:1]} on {tx.target} failed: {exc}") from exc
        self.events.emit("ExecuteTransaction", tx_hash=key, **tx.to_dict())
        return result

    @critical_section
    def set_delay(self, delay: int, *, caller: str) -> None:
        self._require_self(caller)
        self._validate_delay(delay)
        self.delay = delay
        self.events.emit("NewDelay", delay=delay)

    @critical_section
    def set_pending_owner(self, pending_owner: str, *, caller: str) -> None:
        self._require_self(caller)
        self.pending_owner = require_address(pending_owner)
        self.events.emit("NewPendingOwner", pending_owner=self.pending_owner)

    @critical_section
    def accept_ownership(self, *, caller: str) -> None:
        if self.pending_owner is None or to_address(caller) != self.pending_owner:
            raise NotOwner(f"{caller} is not the pending owner")
        self.owner, self.pending_owner = self.pending_owner, None
        self.events.emit("NewOwner", owner=self.owner)

    def export_state(self) -> dict:
        with self.lock:
            return {
                "name": self.name,
                "contract_address": self.address,
                "owner": self.owner,
                "pending_owner": self.pending_owner,
                "delay": self.delay,
                "queued": [tx.to_dict() for tx in self.queued.values()],
            }

    @critical_section
    def import_state(self, state: dict) -> None:
        self._validate_delay(state["delay"])
        self.owner = require_address(state["owner"])
        self.pending_owner = state["pending_owner"] and require_address(state["pending_owner"])
        self.delay = state["delay"]
        queued = {}
        for item in state["queued"]:
            tx = QueuedTransaction(**item)
            if tx.target not in self._targets:
                raise InvalidInput(f"Queued transaction {tx.key} targets unknown {tx.target}")
            queued[tx.key] = tx
        self.queued = queued
        logger.info("Restored %s with %d queued transactions", self.name, len(queued))

    def _build(self, target, value: int, signature: str, data, eta: int) -> QueuedTransaction:
        address = to_address(target)
        if address not in self._targets and isinstance(target, str):
            raise InvalidInput(f"Unknown target {address}")
        if not isinstance(value, int) or value < 0:
            raise InvalidInput(f"Invalid value {value!r}")
        if not isinstance(eta, int):
            raise InvalidInput(f"Invalid eta {eta!r}")
        return QueuedTransaction(
            target=address,
            value=value,
            signature=signature or "",
            data=_normalize_data(data),
            eta=eta,
        )

    def _resolve_call(self, tx: QueuedTransaction):
        args = list(tx.data)
        if tx.signature:
            name = tx.signature.split("(", 1)[0]
        elif args:
            name = str(args.pop(0))
        else:
            raise TransactionExecutionReverted("Empty call")
        target = self._targets[tx.target]
        method = getattr(target, name, None)
        if name.startswith("_") or not callable(method):
            raise TransactionExecutionReverted(f"{tx.target} has no method {name!r}")
        return method, args

    def _require_owner(self, caller: str) -> None:
        if to_address(caller) != self.owner:
            raise NotOwner(f"{caller} is not the timelock owner")

    def _require_self(self, caller: str) -> None:
        if to_address(caller) != self.address:
            raise CallerIsNotTimelock(f"{caller} is not the timelock")

    @staticmethod
    def _validate_delay(delay: int) -> None:
        if not isinstance(delay, int) or delay < MIN_DELAY or delay > MAX_DELAY:
            raise InvalidDelay(f"Delay {delay} is outside [{MIN_DELAY}, {MAX_DELAY}]")
