import pytest

from conftest import ALICE, BOB, DEPLOYER, SEED_AMOUNT
from core.constants import MAX_UINT256, ZERO_ADDRESS
from core.errors import (
    AddressZero,
    CallerIsNotOwner,
    InsufficientAllowance,
    InvalidInput,
    InvalidTokenAmount,
    NotEnoughLocked,
    TokenNotSupported,
)
from services.interest_locker import InterestLocker
from services.providers import InMemoryProvider
from services.vault import Vault

DEPOSIT_AMOUNT = 1_000 * 10**6
LOCK_AMOUNT = 100 * 10**6


def make_vault(vault_id, asset, access_manager, timelock, vault_config):
    provider = InMemoryProvider(f"{vault_id}:Provider", asset)
    vault = Vault(vault_id, asset, [provider], access_manager, timelock.address, vault_config)
    for account in (DEPLOYER, ALICE, BOB):
        asset.approve(account, vault.address, MAX_UINT256)
    vault.setup_vault(SEED_AMOUNT, caller=DEPLOYER)
    return vault


@pytest.fixture
def other_vault(vault, asset, access_manager, timelock, vault_config):
    return make_vault("rUSDC-2", asset, access_manager, timelock, vault_config)


@pytest.fixture
def locker(vault, other_vault):
    locker = InterestLocker(DEPLOYER, [vault, other_vault])
    for shares in (vault, other_vault):
        for account in (ALICE, BOB):
            shares.deposit(DEPOSIT_AMOUNT, account, caller=account)
            shares.approve(locker.address, MAX_UINT256, caller=account)
    return locker


def test_constructor_sets_tokens(locker, vault, other_vault):
    assert locker.get_tokens() == [vault.address, other_vault.address]
    assert locker.is_supported(vault)
    assert not locker.is_supported(ALICE)


def test_lock_zero_amount(locker, vault):
    with pytest.raises(InvalidTokenAmount):
        locker.lock_tokens(vault.address, 0, caller=ALICE)


def test_lock_unsupported_token(locker, asset, access_manager, timelock, vault_config):
    another = make_vault("rUSDC-3", asset, access_manager, timelock, vault_config)
    with pytest.raises(TokenNotSupported) as exc_info:
        locker.lock_tokens(another.address, LOCK_AMOUNT, caller=ALICE)
    assert exc_info.value.error_code == "InterestLocker__TokenNotSupported"


def test_lock_tokens(locker, vault, other_vault):
    locker.lock_tokens(vault.address, LOCK_AMOUNT, caller=ALICE)
    alice_event = locker.events.last("TokensLocked")
    locker.lock_tokens(other_vault, LOCK_AMOUNT, caller=BOB)

    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT - LOCK_AMOUNT
    assert other_vault.balance_of(BOB) == DEPOSIT_AMOUNT - LOCK_AMOUNT
    assert vault.balance_of(locker.address) == LOCK_AMOUNT
    assert locker.total_locked(vault) == LOCK_AMOUNT
    assert locker.total_locked(other_vault) == LOCK_AMOUNT
    assert locker.account_locked(ALICE, vault) == LOCK_AMOUNT
    assert locker.account_locked(BOB, other_vault) == LOCK_AMOUNT
    assert alice_event.args == {"account": ALICE, "token": vault.address, "amount": LOCK_AMOUNT}
    assert locker.events.last("TokensLocked").args == {
        "account": BOB,
        "token": other_vault.address,
        "amount": LOCK_AMOUNT,
    }


def test_lock_without_share_allowance(locker, vault):
    vault.approve(locker.address, 0, caller=ALICE)

    with pytest.raises(InsufficientAllowance):
        locker.lock_tokens(vault, LOCK_AMOUNT, caller=ALICE)
    assert locker.total_locked(vault) == 0
    assert locker.account_locked(ALICE, vault) == 0
    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT


@pytest.fixture
def locked(locker, vault, other_vault):
    locker.lock_tokens(vault, LOCK_AMOUNT, caller=ALICE)
    locker.lock_tokens(other_vault, LOCK_AMOUNT, caller=BOB)
    return locker


def test_unlock_zero_amount(locked, vault):
    with pytest.raises(InvalidTokenAmount):
        locked.unlock_tokens(vault, 0, caller=ALICE)


def test_unlock_more_than_locked(locked, vault):
    with pytest.raises(NotEnoughLocked):
        locked.unlock_tokens(vault, LOCK_AMOUNT + 1, caller=ALICE)


def test_unlock_tokens(locked, vault, other_vault):
    locked.unlock_tokens(vault, LOCK_AMOUNT, caller=ALICE)
    alice_event = locked.events.last("TokensUnlocked")
    locked.unlock_tokens(other_vault, LOCK_AMOUNT // 2, caller=BOB)

    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT
    assert other_vault.balance_of(BOB) == DEPOSIT_AMOUNT - LOCK_AMOUNT // 2
    assert locked.total_locked(vault) == 0
    assert locked.total_locked(other_vault) == LOCK_AMOUNT // 2
    assert locked.account_locked(ALICE, vault) == 0
    assert locked.account_locked(BOB, other_vault) == LOCK_AMOUNT // 2
    assert alice_event.args == {"account": ALICE, "token": vault.address, "amount": LOCK_AMOUNT}
    assert locked.events.last("TokensUnlocked").args == {
        "account": BOB,
        "token": other_vault.address,
        "amount": LOCK_AMOUNT // 2,
    }


def test_set_tokens_requires_owner(locker, vault):
    with pytest.raises(CallerIsNotOwner):
        locker.set_tokens([vault], caller=ALICE)


def test_set_tokens_rejects_zero_address(locker, vault):
    with pytest.raises(AddressZero):
        locker.set_tokens([vault, ZERO_ADDRESS], caller=DEPLOYER)
    with pytest.raises(InvalidInput):
        locker.set_tokens([BOB], caller=DEPLOYER)
    assert len(locker.get_tokens()) == 2


def test_set_tokens(locked, vault, other_vault, asset, access_manager, timelock, vault_config):
    another = make_vault("rUSDC-3", asset, access_manager, timelock, vault_config)

    locked.set_tokens([another], caller=DEPLOYER)

    assert locked.get_tokens() == [another.address]
    assert locked.events.last("TokensChanged").args == {"tokens": [another.address]}
    with pytest.raises(TokenNotSupported):
        locked.lock_tokens(vault, LOCK_AMOUNT, caller=ALICE)

    # shares locked before the change can still be taken out
    locked.unlock_tokens(vault, LOCK_AMOUNT, caller=ALICE)
    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT

    locked.set_tokens([vault.address, another.address], caller=DEPLOYER)
    assert locked.get_tokens() == [vault.address, another.address]


def test_transfer_ownership(locker, vault):
    locker.transfer_ownership(BOB, caller=DEPLOYER)

    with pytest.raises(CallerIsNotOwner):
        locker.set_tokens([vault], caller=DEPLOYER)
    locker.set_tokens([vault], caller=BOB)
    assert locker.get_tokens() == [vault.address]
