from unittest.mock import patch

import pytest

from conftest import ALICE, BOB, CHARLIE, DEPLOYER, MIN_AMOUNT, MINT_AMOUNT, SEED_AMOUNT, TREASURY, WITHDRAW_FEE
from core.constants import MAX_UINT256, MAX_WITHDRAW_FEE, OPERATOR_ROLE, PRECISION_CONSTANT, ZERO_ADDRESS, PausableAction
from core.errors import (
    ActionPaused,
    AmountLessThanMin,
    CallerIsNotGovernor,
    DepositMoreThanMax,
    InsufficientAllowance,
    InvalidInput,
    MissingRole,
    ProviderCallFailed,
    ProviderNotRegistered,
    VaultAlreadySetUp,
)
from services.providers import InMemoryProvider
from services.vault import Vault
from utils.math import Rounding

DEPOSIT_AMOUNT = 100 * 10**6
USER_LIMIT = 1_000 * 10**6
VAULT_LIMIT = 3_000 * 10**6 + SEED_AMOUNT


def test_setup_mints_seed_shares_to_the_vault(unseeded_vault: Vault, provider_a: InMemoryProvider):
    assert unseeded_vault.paused(PausableAction.DEPOSIT)

    shares = unseeded_vault.setup_vault(SEED_AMOUNT, caller=DEPLOYER)

    assert shares == SEED_AMOUNT
    assert unseeded_vault.balance_of(unseeded_vault.address) == SEED_AMOUNT
    assert unseeded_vault.total_assets() == SEED_AMOUNT
    assert provider_a.balance_of(unseeded_vault.address, unseeded_vault.address) == SEED_AMOUNT
    assert not unseeded_vault.paused(PausableAction.DEPOSIT)
    assert unseeded_vault.events.last("VaultSetup").args == {"caller": DEPLOYER}


def test_setup_only_once(vault: Vault):
    with pytest.raises(VaultAlreadySetUp):
        vault.setup_vault(SEED_AMOUNT, caller=DEPLOYER)


def test_setup_below_minimum(unseeded_vault: Vault):
    with pytest.raises(AmountLessThanMin):
        unseeded_vault.setup_vault(MIN_AMOUNT - 1, caller=DEPLOYER)
    assert not unseeded_vault.setup_completed


def test_deposit_rejected_before_setup(unseeded_vault: Vault):
    with pytest.raises(ActionPaused):
        unseeded_vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)


@pytest.mark.parametrize(
    "amount,receiver,error",
    [
        (DEPOSIT_AMOUNT, ZERO_ADDRESS, InvalidInput),
        (0, ALICE, InvalidInput),
        (MIN_AMOUNT - 1, ALICE, AmountLessThanMin),
    ],
)
def test_deposit_input_validation(vault: Vault, amount, receiver, error):
    with pytest.raises(error):
        vault.deposit(amount, receiver, caller=ALICE)
    assert vault.balance_of(ALICE) == 0


def test_deposit_moves_assets_to_active_provider(vault: Vault, asset, provider_a: InMemoryProvider):
    shares = vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    assert shares == DEPOSIT_AMOUNT
    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT
    assert vault.total_assets() == SEED_AMOUNT + DEPOSIT_AMOUNT
    assert provider_a.balance_of(vault.address, vault.address) == SEED_AMOUNT + DEPOSIT_AMOUNT
    assert asset.balance_of(ALICE) == MINT_AMOUNT - DEPOSIT_AMOUNT
    assert asset.balance_of(vault.address) == 0
    assert vault.events.last("Deposit").args == {
        "sender": ALICE,
        "receiver": ALICE,
        "assets": DEPOSIT_AMOUNT,
        "shares": DEPOSIT_AMOUNT,
    }


def test_deposit_for_another_receiver(vault: Vault, asset):
    vault.deposit(DEPOSIT_AMOUNT, BOB, caller=ALICE)

    assert vault.balance_of(BOB) == DEPOSIT_AMOUNT
    assert vault.balance_of(ALICE) == 0
    assert asset.balance_of(ALICE) == MINT_AMOUNT - DEPOSIT_AMOUNT


def test_mint_shares(vault: Vault, asset):
    assets = vault.mint(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    assert assets == DEPOSIT_AMOUNT
    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT
    assert asset.balance_of(ALICE) == MINT_AMOUNT - DEPOSIT_AMOUNT


def test_withdraw_charges_exact_fee(vault: Vault, asset):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    fee = DEPOSIT_AMOUNT * WITHDRAW_FEE // PRECISION_CONSTANT

    shares = vault.withdraw(DEPOSIT_AMOUNT, ALICE, ALICE, caller=ALICE)

    assert shares == DEPOSIT_AMOUNT
    assert vault.balance_of(ALICE) == 0
    assert asset.balance_of(ALICE) == MINT_AMOUNT - fee
    assert asset.balance_of(TREASURY) == fee
    assert vault.total_assets() == SEED_AMOUNT
    assert vault.events.last("Withdraw").args == {
        "sender": ALICE,
        "receiver": ALICE,
        "owner": ALICE,
        "assets": DEPOSIT_AMOUNT,
        "shares": DEPOSIT_AMOUNT,
    }
    assert vault.events.last("FeesCharged").args == {"treasury": TREASURY, "assets": DEPOSIT_AMOUNT, "fee": fee}


def test_withdraw_more_than_available_is_capped(vault: Vault, asset):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    vault.withdraw(DEPOSIT_AMOUNT * 2, ALICE, ALICE, caller=ALICE)

    fee = DEPOSIT_AMOUNT * WITHDRAW_FEE // PRECISION_CONSTANT
    assert asset.balance_of(ALICE) == MINT_AMOUNT - fee
    assert vault.balance_of(ALICE) == 0


def test_redeem_more_than_available_is_capped(vault: Vault, asset):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    assets = vault.redeem(DEPOSIT_AMOUNT * 2, ALICE, ALICE, caller=ALICE)

    assert assets == DEPOSIT_AMOUNT
    assert vault.balance_of(ALICE) == 0
    assert asset.balance_of(TREASURY) == DEPOSIT_AMOUNT * WITHDRAW_FEE // PRECISION_CONSTANT


def test_withdraw_with_nothing_to_withdraw(vault: Vault):
    with pytest.raises(InvalidInput):
        vault.withdraw(DEPOSIT_AMOUNT, BOB, BOB, caller=BOB)


@pytest.mark.parametrize("receiver,owner", [(ZERO_ADDRESS, ALICE), (ALICE, ZERO_ADDRESS)])
def test_withdraw_rejects_zero_parties(vault: Vault, receiver, owner):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    with pytest.raises(InvalidInput):
        vault.withdraw(DEPOSIT_AMOUNT, receiver, owner, caller=ALICE)


def test_withdraw_on_behalf_spends_allowance(vault: Vault, asset):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    with pytest.raises(InsufficientAllowance):
        vault.withdraw(DEPOSIT_AMOUNT, BOB, ALICE, caller=BOB)

    vault.approve(BOB, DEPOSIT_AMOUNT, caller=ALICE)
    vault.withdraw(DEPOSIT_AMOUNT // 2, BOB, ALICE, caller=BOB)

    assert vault.allowance(ALICE, BOB) == DEPOSIT_AMOUNT // 2
    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT // 2
    assert asset.balance_of(BOB) == MINT_AMOUNT + DEPOSIT_AMOUNT // 2 - (DEPOSIT_AMOUNT // 2) * WITHDRAW_FEE // PRECISION_CONSTANT


def test_share_transfers(vault: Vault):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    vault.transfer(BOB, DEPOSIT_AMOUNT // 4, caller=ALICE)
    vault.approve(CHARLIE, MAX_UINT256, caller=ALICE)
    vault.transfer_from(ALICE, CHARLIE, DEPOSIT_AMOUNT // 4, caller=CHARLIE)

    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT // 2
    assert vault.balance_of(BOB) == DEPOSIT_AMOUNT // 4
    assert vault.balance_of(CHARLIE) == DEPOSIT_AMOUNT // 4
    assert vault.allowance(ALICE, CHARLIE) == MAX_UINT256


def test_conversions_are_one_to_one_before_any_yield(vault: Vault):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    assert vault.convert_to_shares(12345) == 12345
    assert vault.convert_to_assets(12345) == 12345


def test_round_trip_loses_at_most_one_unit(vault: Vault, rebalancer, provider_a, provider_b):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    vault.deposit(DEPOSIT_AMOUNT * 3, BOB, caller=BOB)
    # a rebalance fee leaves fewer assets than shares
    rebalancer.rebalance(DEPOSIT_AMOUNT, provider_a, provider_b, 333_333, caller=DEPLOYER)
    assert vault.total_assets() < vault.total_supply

    for x in list(range(1, 500)) + [10**6 + 7, 123_456_789, DEPOSIT_AMOUNT]:
        back = vault.convert_to_assets(vault.convert_to_shares(x))
        assert back <= x <= back + 1


def test_previews_round_in_favor_of_the_vault(vault: Vault, rebalancer, provider_a, provider_b):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    rebalancer.rebalance(DEPOSIT_AMOUNT // 2, provider_a, provider_b, 77_777, caller=DEPLOYER)

    for x in (1, 999, 10**6 + 1, 33_333_333):
        assert vault.preview_deposit(x) <= vault.preview_withdraw(x)
        assert vault.preview_redeem(x) <= vault.preview_mint(x)
        assert vault.preview_withdraw(x) == vault.convert_to_shares(x, Rounding.CEIL)


def test_deposit_limits(vault: Vault):
    vault.set_deposit_limits(USER_LIMIT, VAULT_LIMIT, caller=DEPLOYER)
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    assert vault.max_deposit(ALICE) == USER_LIMIT - DEPOSIT_AMOUNT
    assert vault.get_vault_capacity() == VAULT_LIMIT - SEED_AMOUNT - DEPOSIT_AMOUNT
    with pytest.raises(DepositMoreThanMax):
        vault.deposit(USER_LIMIT, ALICE, caller=ALICE)
    with pytest.raises(DepositMoreThanMax):
        vault.mint(USER_LIMIT, ALICE, caller=ALICE)

    vault.deposit(USER_LIMIT, BOB, caller=BOB)
    vault.deposit(USER_LIMIT, CHARLIE, caller=CHARLIE)
    vault.deposit(USER_LIMIT - DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    assert vault.get_vault_capacity() == 0
    assert vault.max_deposit(DEPLOYER) == 0
    assert vault.max_mint(DEPLOYER) == 0


@pytest.mark.parametrize(
    "user_limit,vault_limit",
    [(0, VAULT_LIMIT), (USER_LIMIT, 0), (VAULT_LIMIT, VAULT_LIMIT), (VAULT_LIMIT + 1, VAULT_LIMIT)],
)
def test_invalid_deposit_limits(vault: Vault, user_limit, vault_limit):
    with pytest.raises(DepositMoreThanMax):
        vault.set_deposit_limits(user_limit, vault_limit, caller=DEPLOYER)
    assert vault.config.vault_deposit_limit is None


def test_unlimited_vault_reports_max_capacity(vault: Vault):
    assert vault.get_vault_capacity() == MAX_UINT256
    assert vault.max_deposit(ALICE) == MAX_UINT256
    assert vault.max_mint(ALICE) == MAX_UINT256


def test_admin_setters(vault: Vault):
    vault.set_withdraw_fee(MAX_WITHDRAW_FEE, caller=DEPLOYER)
    vault.set_min_deposit_amount(5 * MIN_AMOUNT, caller=DEPLOYER)

    assert vault.config.withdraw_fee_rate == MAX_WITHDRAW_FEE
    assert vault.config.min_deposit_amount == 5 * MIN_AMOUNT
    assert vault.events.last("FeesChanged").args == {"withdraw_fee_rate": MAX_WITHDRAW_FEE}
    assert vault.events.last("MinAmountChanged").args == {"min_amount": 5 * MIN_AMOUNT}
    with pytest.raises(AmountLessThanMin):
        vault.deposit(5 * MIN_AMOUNT - 1, ALICE, caller=ALICE)


def test_withdraw_fee_is_capped(vault: Vault):
    with pytest.raises(InvalidInput):
        vault.set_withdraw_fee(MAX_WITHDRAW_FEE + 1, caller=DEPLOYER)
    assert vault.config.withdraw_fee_rate == WITHDRAW_FEE


def test_admin_setters_require_admin(vault: Vault, provider_b):
    for call in (
        lambda: vault.set_withdraw_fee(0, caller=ALICE),
        lambda: vault.set_min_deposit_amount(1, caller=ALICE),
        lambda: vault.set_deposit_limits(USER_LIMIT, VAULT_LIMIT, caller=ALICE),
        lambda: vault.set_active_provider(provider_b, caller=ALICE),
        lambda: vault.pause(PausableAction.DEPOSIT, caller=ALICE),
    ):
        with pytest.raises(MissingRole):
            call()


def test_set_active_provider(vault: Vault, asset, provider_b):
    vault.set_active_provider(provider_b, caller=DEPLOYER)
    assert vault.active_provider == provider_b.address
    assert vault.events.last("ActiveProviderChanged").args == {"provider": provider_b.address}

    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    assert provider_b.balance_of(vault.address, vault.address) == DEPOSIT_AMOUNT


def test_set_active_provider_must_be_registered(vault: Vault, asset):
    stranger = InMemoryProvider("Stranger", asset)
    with pytest.raises(ProviderNotRegistered):
        vault.set_active_provider(stranger, caller=DEPLOYER)


def test_set_providers_is_governor_only(vault: Vault, timelock, provider_a, provider_b, asset):
    provider_c = InMemoryProvider("Provider_C", asset)
    with pytest.raises(CallerIsNotGovernor):
        vault.set_providers([provider_a, provider_c], caller=DEPLOYER)

    vault.set_providers([provider_a, provider_b, provider_c], caller=timelock.address)

    assert vault.get_providers() == [provider_a.address, provider_b.address, provider_c.address]
    assert asset.allowance(vault.address, provider_c.address) == MAX_UINT256
    assert vault.events.last("ProvidersChanged").args["providers"] == vault.get_providers()


@pytest.mark.parametrize("providers", [[], ["0x0000000000000000000000000000000000000000"], "duplicate"])
def test_set_providers_validation(vault: Vault, timelock, provider_a, providers):
    if providers == "duplicate":
        providers = [provider_a, provider_a]
    with pytest.raises(InvalidInput):
        vault.set_providers(providers, caller=timelock.address)


def test_removing_active_provider_falls_back_to_first(vault: Vault, timelock, provider_a, provider_b, asset):
    vault.set_providers([provider_b], caller=timelock.address)

    assert vault.active_provider == provider_b.address
    assert asset.allowance(vault.address, provider_a.address) == 0


def test_set_treasury_is_governor_only(vault: Vault, timelock):
    with pytest.raises(CallerIsNotGovernor):
        vault.set_treasury(BOB, caller=DEPLOYER)
    with pytest.raises(InvalidInput):
        vault.set_treasury(ZERO_ADDRESS, caller=timelock.address)

    vault.set_treasury(BOB, caller=timelock.address)
    assert vault.config.treasury == BOB
    assert vault.events.last("TreasuryChanged").args == {"treasury": BOB}


def test_failed_provider_deposit_rolls_everything_back(vault: Vault, asset, provider_a):
    events_before = len(vault.events)
    with patch.object(provider_a, "deposit", return_value=False):
        with pytest.raises(ProviderCallFailed):
            vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    assert asset.balance_of(ALICE) == MINT_AMOUNT
    assert asset.balance_of(provider_a.address) == SEED_AMOUNT
    assert vault.balance_of(ALICE) == 0
    assert vault.total_supply == SEED_AMOUNT
    assert len(vault.events) == events_before


def test_short_provider_withdraw_rolls_everything_back(vault: Vault, asset, provider_a):
    vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)

    with patch.object(provider_a, "withdraw", return_value=True):
        with pytest.raises(ProviderCallFailed):
            vault.withdraw(DEPOSIT_AMOUNT, ALICE, ALICE, caller=ALICE)

    assert vault.balance_of(ALICE) == DEPOSIT_AMOUNT
    assert vault.total_assets() == SEED_AMOUNT + DEPOSIT_AMOUNT
    assert asset.balance_of(ALICE) == MINT_AMOUNT - DEPOSIT_AMOUNT


def test_raising_provider_is_reported_as_provider_failure(vault: Vault, provider_a):
    with patch.object(provider_a, "deposit", side_effect=RuntimeError("backend down")):
        with pytest.raises(ProviderCallFailed) as exc_info:
            vault.deposit(DEPOSIT_AMOUNT, ALICE, caller=ALICE)
    assert exc_info.value.category == "external_call"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_interest_accrues_to_share_holders(vault: Vault, provider_a):
    vault.deposit(DEPOSIT_AMOUNT - SEED_AMOUNT, ALICE, caller=ALICE)
    provider_a.rate = 10**27 // 10
    provider_a.accrue(365 * 24 * 60 * 60)

    assert vault.total_assets() == DEPOSIT_AMOUNT + DEPOSIT_AMOUNT // 10
    assert vault.balance_of_asset(ALICE) == (DEPOSIT_AMOUNT - SEED_AMOUNT) * 11 // 10


def test_operator_role_does_not_grant_admin(vault: Vault, access_manager):
    access_manager.grant_role(OPERATOR_ROLE, ALICE, caller=DEPLOYER)
    with pytest.raises(MissingRole):
        vault.set_withdraw_fee(0, caller=ALICE)
