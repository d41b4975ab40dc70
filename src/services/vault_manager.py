import logging
import threading

from core.constants import ADMIN_ROLE, EXECUTOR_ROLE
from core.errors import InvalidAssetAmount, InvalidInput, UnknownVault
from services.access_manager import AccessManager
from services.events import EventLog
from services.rebalancer import VaultRebalancer
from utils.atomic import Checkpointable, critical_section
from utils.web3_utils import derive_address, require_address, to_address

logger = logging.getLogger(__name__)


class VaultManager(Checkpointable):
    """Entry point for executors driving rebalances across every registered vault.

    The manager acts as its own principal towards each vault, so its address must hold
    OPERATOR on the vault's access manager.
    """

    _checkpoint_refs = ("_rebalancers",)

    def __init__(self, access_manager: AccessManager, *, name: str = "VaultManager"):
        self.name = name
        self.address = derive_address(f"vault-manager:{name}")
        self.access_manager = access_manager
        self.lock = threading.RLock()
        self.events = EventLog(name, logger)
        self._rebalancers: dict[str, VaultRebalancer] = {}

    def participants(self):
        return (self, self.events, self.access_manager, self.access_manager.events)

    def vault_ids(self) -> list[str]:
        return sorted(self._rebalancers)

    def rebalancer(self, vault_id: str) -> VaultRebalancer:
        try:
            return self._rebalancers[vault_id]
        except KeyError:
            raise UnknownVault(f"Vault {vault_id!r} is not managed") from None

    @critical_section
    def register_vault(self, vault_id: str, rebalancer: VaultRebalancer, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        if not vault_id or vault_id in self._rebalancers:
            raise InvalidInput(f"Vault id {vault_id!r} is empty or already registered")
        self._rebalancers[vault_id] = rebalancer
        self.events.emit("VaultRegistered", vault_id=vault_id, vault=rebalancer.vault.address)

    @critical_section
    def allow_executor(self, executor: str, allowed: bool, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        executor = require_address(executor)
        if self.access_manager.has_role(EXECUTOR_ROLE, executor) == allowed:
            raise InvalidInput(f"{executor} executor status is already {allowed}")
        if allowed:
            self.access_manager.grant_role(EXECUTOR_ROLE, executor, caller=caller)
        else:
            self.access_manager.revoke_role(EXECUTOR_ROLE, executor, caller=caller)
        self.events.emit("AllowExecutor", executor=executor, allowed=allowed)

    @critical_section
    def rebalance_vault(
        self,
        vault_id: str,
        assets: int,
        from_provider,
        to_provider,
        fee: int,
        activate_to: bool = False,
        *,
        caller: str,
    ) -> bool:
        self.access_manager.check_role(EXECUTOR_ROLE, caller)
        rebalancer = self.rebalancer(vault_id)
        balance = rebalancer.vault.provider_balance(from_provider)
        resolved = rebalancer.resolve_amount(assets, from_provider)
        if not isinstance(resolved, int) or resolved <= 0 or resolved > balance:
            raise InvalidAssetAmount(f"Cannot move {assets} out of a balance of {balance}")
        logger.info(
            "Executor %s rebalancing %s %s from %s to %s",
            to_address(caller),
            vault_id,
            resolved,
            to_address(from_provider),
            to_address(to_provider),
        )
        return rebalancer.rebalance(
            resolved, from_provider, to_provider, fee, activate_to, caller=self.address
        )
