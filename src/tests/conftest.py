import pytest

from core.constants import MAX_UINT256, MIN_DELAY, OPERATOR_ROLE
from services.access_manager import AccessManager
from services.asset_token import AssetToken
from services.providers import InMemoryProvider
from services.rebalancer import VaultRebalancer
from services.timelock import Timelock
from services.vault import Vault, VaultConfig
from utils.web3_utils import derive_address

DEPLOYER = derive_address("deployer")
TREASURY = derive_address("treasury")
ALICE = derive_address("alice")
BOB = derive_address("bob")
CHARLIE = derive_address("charlie")

MIN_AMOUNT = 10**6
SEED_AMOUNT = 10**6
WITHDRAW_FEE = 10**15  # 0.1%
MINT_AMOUNT = 10_000_000 * 10**6


class FakeClock:
    def __init__(self, now: int = 1_700_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def asset():
    return AssetToken("USDC", 6)


@pytest.fixture
def access_manager():
    manager = AccessManager(DEPLOYER)
    manager.grant_role(OPERATOR_ROLE, DEPLOYER, caller=DEPLOYER)
    return manager


@pytest.fixture
def timelock(clock):
    return Timelock(DEPLOYER, MIN_DELAY, clock=clock)


@pytest.fixture
def provider_a(asset):
    return InMemoryProvider("Provider_A", asset)


@pytest.fixture
def provider_b(asset):
    return InMemoryProvider("Provider_B", asset)


@pytest.fixture
def vault_config():
    return VaultConfig(min_deposit_amount=MIN_AMOUNT, withdraw_fee_rate=WITHDRAW_FEE, treasury=TREASURY)


def fund(asset: AssetToken, vault: Vault, *accounts: str, amount: int = MINT_AMOUNT):
    for account in accounts:
        asset.mint(account, amount)
        asset.approve(account, vault.address, MAX_UINT256)


@pytest.fixture
def unseeded_vault(asset, provider_a, provider_b, access_manager, timelock, vault_config):
    vault = Vault("rUSDC", asset, [provider_a, provider_b], access_manager, timelock.address, vault_config)
    timelock.register_target(vault)
    fund(asset, vault, DEPLOYER, ALICE, BOB, CHARLIE)
    return vault


@pytest.fixture
def vault(unseeded_vault):
    unseeded_vault.setup_vault(SEED_AMOUNT, caller=DEPLOYER)
    return unseeded_vault


@pytest.fixture
def rebalancer(vault):
    return VaultRebalancer(vault)
