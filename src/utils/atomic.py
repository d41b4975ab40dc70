"""Checkpoint/rollback helpers giving every public operation all-or-nothing semantics."""

import contextlib
import copy
import functools
import logging
from typing import Any, Iterable

logger = logging.getLogger(__name__)


class Checkpointable:
    # attributes holding plain data, copied deeply
    _checkpoint_attrs: tuple[str, ...] = ()
    # attributes holding references to other objects, copied one level deep
    _checkpoint_refs: tuple[str, ...] = ()
    # components lock before providers, providers before tokens
    _lock_rank = 0

    def checkpoint(self) -> dict[str, Any]:
        state = {name: copy.deepcopy(getattr(self, name)) for name in self._checkpoint_attrs}
        state.update({name: copy.copy(getattr(self, name)) for name in self._checkpoint_refs})
        return state

    def restore(self, state: dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)


def _unique(participants: Iterable[Any]) -> list[Any]:
    seen: set[int] = set()
    unique = []
    for participant in participants:
        if participant is None or id(participant) in seen:
            continue
        if not callable(getattr(participant, "checkpoint", None)):
            continue
        seen.add(id(participant))
        unique.append(participant)
    return unique


@contextlib.contextmanager
def atomic(*participants: Any):
    checkpoints = [(p, p.checkpoint()) for p in _unique(participants)]
    try:
        yield
    except BaseException:
        for participant, state in reversed(checkpoints):
            participant.restore(state)
        logger.debug("Rolled back %d participants", len(checkpoints))
        raise


def _shared_locks(owner_lock: Any, participants: Iterable[Any]) -> list[Any]:
    # every other lock the operation needs, by rank then address
    locks: dict[int, tuple[tuple[int, str], Any]] = {}
    for participant in _unique(participants):
        lock = getattr(participant, "lock", None)
        if lock is None or lock is owner_lock:
            continue
        key = (getattr(participant, "_lock_rank", 0), str(getattr(participant, "address", "")))
        locks.setdefault(id(lock), (key, lock))
    return [lock for _, lock in sorted(locks.values(), key=lambda item: item[0])]


def critical_section(method):
    """Run a service method under the owner's lock, rolling every participant back on failure.

    The owner's lock is taken first, then the lock of every other participant ordered by
    rank and address. The checkpoint is taken only once all of them are held, so a
    rollback never undoes state another component committed concurrently.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            participants = self.participants()
            with contextlib.ExitStack() as stack:
                for lock in _shared_locks(self.lock, participants):
                    stack.enter_context(lock)
                with atomic(*participants):
                    return method(self, *args, **kwargs)

    return wrapper
