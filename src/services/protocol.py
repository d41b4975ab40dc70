import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from core.config import Settings, settings
from core.constants import EXECUTOR_ROLE, OPERATOR_ROLE, ROOT_UPDATER_ROLE
from core.errors import UnknownVault
from services.interest_locker import InterestLocker
from services.access_manager import AccessManager
from services.asset_token import AssetToken
from services.providers import InMemoryProvider
from services.rebalancer import RewardsForwarder, VaultRebalancer
from services.rewards_distributor import RewardsDistributor
from services.timelock import Timelock
from services.vault import Vault, VaultConfig
from services.vault_manager import VaultManager

logger = logging.getLogger(__name__)


@dataclass
class Protocol:
    deployer: str
    asset: AssetToken
    access_manager: AccessManager
    timelock: Timelock
    distributor: RewardsDistributor
    manager: VaultManager
    vaults: dict[str, Vault] = field(default_factory=dict)
    providers: dict[str, list[InMemoryProvider]] = field(default_factory=dict)
    rebalancers: dict[str, VaultRebalancer] = field(default_factory=dict)
    forwarders: dict[str, RewardsForwarder] = field(default_factory=dict)
    locker: Optional[InterestLocker] = None

    def vault(self, vault_id: str) -> Vault:
        try:
            return self.vaults[vault_id]
        except KeyError:
            raise UnknownVault(f"Vault {vault_id!r} does not exist") from None


def build_protocol(
    config: Settings = settings,
    *,
    clock: Optional[Callable[[], int]] = None,
    seed: bool = True,
) -> Protocol:
    """Wire a full deployment: one asset, a timelock governing every vault, a manager, a distributor
    and a locker accepting every vault's shares.

    Each vault gets its own set of in-memory providers, named after ``PROVIDER_NAMES``.
    With ``seed`` the deployer mints and absorbs the bootstrap deposit of every vault.
    """
    deployer = config.DEPLOYER_ADDRESS
    asset = AssetToken(config.ASSET_SYMBOL, config.ASSET_DECIMALS)
    access_manager = AccessManager(deployer)
    timelock = Timelock(deployer, config.TIMELOCK_DELAY, clock=clock)
    distributor = RewardsDistributor(access_manager)
    distributor.register_token(asset)
    manager = VaultManager(access_manager)

    for role in (OPERATOR_ROLE, EXECUTOR_ROLE, ROOT_UPDATER_ROLE):
        access_manager.grant_role(role, deployer, caller=deployer)
    access_manager.grant_role(OPERATOR_ROLE, manager.address, caller=deployer)

    protocol = Protocol(
        deployer=deployer,
        asset=asset,
        access_manager=access_manager,
        timelock=timelock,
        distributor=distributor,
        manager=manager,
    )

    for vault_id in config.VAULT_IDS:
        providers = [InMemoryProvider(f"{vault_id}:{name}", asset) for name in config.PROVIDER_NAMES]
        vault = Vault(
            vault_id,
            asset,
            providers,
            access_manager,
            timelock.address,
            VaultConfig(
                min_deposit_amount=config.MIN_DEPOSIT_AMOUNT,
                withdraw_fee_rate=config.WITHDRAW_FEE_RATE,
                treasury=config.TREASURY_ADDRESS,
                user_deposit_limit=config.USER_DEPOSIT_LIMIT,
                vault_deposit_limit=config.VAULT_DEPOSIT_LIMIT,
            ),
            chain_id=config.CHAIN_ID,
            clock=clock,
        )
        timelock.register_target(vault)
        rebalancer = VaultRebalancer(vault)
        manager.register_vault(vault_id, rebalancer, caller=deployer)

        protocol.vaults[vault_id] = vault
        protocol.providers[vault_id] = providers
        protocol.rebalancers[vault_id] = rebalancer
        protocol.forwarders[vault_id] = RewardsForwarder(rebalancer, distributor)

        if seed:
            asset.mint(deployer, config.MIN_DEPOSIT_AMOUNT)
            asset.approve(deployer, vault.address, config.MIN_DEPOSIT_AMOUNT)
            vault.setup_vault(config.MIN_DEPOSIT_AMOUNT, caller=deployer)

    protocol.locker = InterestLocker(deployer, list(protocol.vaults.values()))

    logger.info(
        "Built protocol with vaults %s, timelock %s, distributor %s, locker %s",
        list(protocol.vaults),
        timelock.address,
        distributor.address,
        protocol.locker.address,
    )
    return protocol
