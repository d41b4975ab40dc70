import logging
import threading
from typing import Optional, Sequence

from core.constants import ADMIN_ROLE, ROOT_UPDATER_ROLE
from core.errors import (
    AlreadyClaimed,
    CallerIsNotAccount,
    EnforcedPause,
    ExpectedPause,
    InvalidInput,
    InvalidProof,
)
from services.access_manager import AccessManager
from services.asset_token import AssetToken
from services.events import EventLog
from utils.atomic import Checkpointable, critical_section
from utils.merkle_tree import leaf_hash, verify_proof
from utils.web3_utils import derive_address, require_address, to_address, to_bytes32

logger = logging.getLogger(__name__)

LEAF_ENCODING = ("address", "address", "uint256")


class RewardsDistributor(Checkpointable):
    """Pays out cumulative reward entitlements certified by a published Merkle root.

    Each leaf is ``(account, token, claimable_total)``. Claims record the certified total,
    so a claimant only ever receives the difference with what they already took.
    """

    _checkpoint_attrs = ("merkle_root", "paused", "_claimed")
    _checkpoint_refs = ("_tokens",)

    def __init__(self, access_manager: AccessManager, *, name: str = "RewardsDistributor"):
        self.name = name
        self.address = derive_address(f"rewards-distributor:{name}")
        self.access_manager = access_manager
        self.lock = threading.RLock()
        self.events = EventLog(name, logger)
        self.merkle_root: Optional[str] = None
        self.paused = False
        # account -> token -> cumulative amount claimed
        self._claimed: dict[str, dict[str, int]] = {}
        self._tokens: dict[str, AssetToken] = {}

    def participants(self):
        tokens = [part for token in self._tokens.values() for part in (token, token.events)]
        return (self, self.events, *tokens)

    def register_token(self, token: AssetToken) -> None:
        with self.lock:
            self._tokens[require_address(token)] = token

    def token(self, token) -> AssetToken:
        address = to_address(token)
        # registered tokens only, their locks are taken before a claim starts
        if address not in self._tokens:
            raise InvalidInput(f"Unknown reward token {address}")
        return self._tokens[address]

    def claimed(self, account: str, token) -> int:
        return self._claimed.get(to_address(account), {}).get(to_address(token), 0)

    def claimed_map(self) -> dict[str, dict[str, int]]:
        return {account: dict(tokens) for account, tokens in self._claimed.items()}

    @critical_section
    def claim(
        self, account: str, token, claimable_total: int, proof: Sequence[str], *, caller: str
    ) -> int:
        if self.paused:
            raise EnforcedPause(f"{self.name} is paused")
        account = require_address(account)
        if to_address(caller) != account:
            raise CallerIsNotAccount(f"{caller} cannot claim for {account}")
        reward_token = self.token(token)
        if not isinstance(claimable_total, int) or claimable_total < 0:
            raise InvalidInput(f"Invalid amount {claimable_total!r}")
        if self.merkle_root is None:
            raise InvalidProof("No root has been published")

        leaf = leaf_hash(LEAF_ENCODING, (account, reward_token.address, claimable_total))
        try:
            valid = verify_proof(self.merkle_root, leaf, list(proof))
        except (ValueError, InvalidInput) as exc:
            raise InvalidProof(f"Malformed proof: {exc}") from exc
        if not valid:
            raise InvalidProof(f"Proof does not match root {self.merkle_root}")

        already = self.claimed(account, reward_token)
        if claimable_total == already:
            raise AlreadyClaimed(f"{account} already claimed {already}")
        if claimable_total < already:
            raise InvalidProof(f"{account} certified {claimable_total} but claimed {already}")

        delta = claimable_total - already
        self._claimed.setdefault(account, {})[reward_token.address] = claimable_total
        reward_token.transfer(self.address, account, delta)
        self.events.emit("RewardsClaimed", account=account, token=reward_token.address, amount=delta)
        return delta

    @critical_section
    def update_root(self, root: str, *, caller: str) -> None:
        self.access_manager.check_role(ROOT_UPDATER_ROLE, caller)
        try:
            root_bytes = to_bytes32(root)
        except ValueError as exc:
            raise InvalidInput(f"Invalid root {root!r}") from exc
        self.merkle_root = "0x" + root_bytes.hex()
        self.events.emit("RootUpdated", root=self.merkle_root)

    @critical_section
    def pause(self, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        if self.paused:
            raise EnforcedPause(f"{self.name} is already paused")
        self.paused = True
        self.events.emit("Paused", account=to_address(caller))

    @critical_section
    def unpause(self, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        if not self.paused:
            raise ExpectedPause(f"{self.name} is not paused")
        self.paused = False
        self.events.emit("Unpaused", account=to_address(caller))

    @critical_section
    def withdraw(self, token, *, caller: str) -> int:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        reward_token = self.token(token)
        amount = reward_token.balance_of(self.address)
        if amount:
            reward_token.transfer(self.address, to_address(caller), amount)
        self.events.emit("Withdraw", token=reward_token.address, to=to_address(caller), amount=amount)
        return amount

    def export_state(self) -> dict:
        with self.lock:
            return {
                "name": self.name,
                "contract_address": self.address,
                "merkle_root": self.merkle_root,
                "paused": self.paused,
                "claimed": self.claimed_map(),
            }

    @critical_section
    def import_state(self, state: dict) -> None:
        self.merkle_root = state["merkle_root"] and "0x" + to_bytes32(state["merkle_root"]).hex()
        self.paused = bool(state["paused"])
        self._claimed = {
            require_address(account): {to_address(token): int(amount) for token, amount in tokens.items()}
            for account, tokens in state["claimed"].items()
        }
        logger.info("Restored %s at root %s", self.name, self.merkle_root)
