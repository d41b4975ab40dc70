import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from core.constants import (
    ADMIN_ROLE,
    MAX_UINT256,
    MAX_WITHDRAW_FEE,
    PRECISION_CONSTANT,
    PausableAction,
)
from core.errors import (
    ActionNotPaused,
    ActionPaused,
    AmountLessThanMin,
    CallerIsNotGovernor,
    DepositMoreThanMax,
    ExpiredDeadline,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidInput,
    InvalidSignature,
    ProviderCallFailed,
    ProviderNotRegistered,
    VaultAlreadySetUp,
    VaultHoldsNoAssets,
)
from services.access_manager import AccessManager
from services.asset_token import AssetToken
from services.events import EventLog
from services.providers import ProviderAdapter
from services.timelock import utc_timestamp
from utils.atomic import Checkpointable, critical_section
from utils.math import Rounding, mul_div
from utils.web3_utils import (
    derive_address,
    permit_typed_data,
    recover_typed_data_signer,
    require_address,
    to_address,
)

logger = logging.getLogger(__name__)


@dataclass
class VaultConfig:
    min_deposit_amount: int
    withdraw_fee_rate: int
    treasury: str
    user_deposit_limit: Optional[int] = None
    vault_deposit_limit: Optional[int] = None

    def __post_init__(self):
        self.treasury = require_address(self.treasury)
        validate_withdraw_fee(self.withdraw_fee_rate)
        validate_deposit_limits(self.user_deposit_limit, self.vault_deposit_limit)

    @property
    def has_limits(self) -> bool:
        return self.vault_deposit_limit is not None


def validate_withdraw_fee(rate: int) -> None:
    if not isinstance(rate, int) or rate < 0 or rate > MAX_WITHDRAW_FEE:
        raise InvalidInput(f"Withdraw fee rate {rate} is above {MAX_WITHDRAW_FEE}")


def validate_deposit_limits(user_limit: Optional[int], vault_limit: Optional[int]) -> None:
    if user_limit is None and vault_limit is None:
        return
    if user_limit is None or vault_limit is None:
        raise InvalidInput("Deposit limits must be set together")
    if user_limit <= 0 or vault_limit <= 0 or user_limit >= vault_limit:
        raise DepositMoreThanMax(f"Invalid deposit limits user={user_limit} vault={vault_limit}")


class Vault(Checkpointable):
    """Share ledger over a single asset whose funds live in one of several providers.

    Depositors hold shares, and ``total_assets`` is always the sum of what the registered
    providers report for this vault. Deposits stay paused until ``setup_vault`` absorbs a
    seed deposit, which is minted to the vault itself.
    """

    _checkpoint_attrs = (
        "_shares",
        "_share_allowances",
        "_nonces",
        "total_supply",
        "_providers",
        "active_provider",
        "_paused",
        "setup_completed",
        "config",
        "governor",
    )
    _checkpoint_refs = ("_adapters", "_known_adapters")

    def __init__(
        self,
        vault_id: str,
        asset: AssetToken,
        providers: Sequence[ProviderAdapter],
        access_manager: AccessManager,
        governor: str,
        config: VaultConfig,
        *,
        name: Optional[str] = None,
        available_providers: Sequence[ProviderAdapter] = (),
        chain_id: int = 1,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.vault_id = vault_id
        self.name = name or f"Rebalance {asset.symbol}"
        self.address = derive_address(f"vault:{vault_id}")
        self.asset = asset
        self.access_manager = access_manager
        self.governor = require_address(governor)
        self.config = config
        self.chain_id = chain_id
        self.clock = clock or utc_timestamp
        self.lock = threading.RLock()
        self.events = EventLog(vault_id, logger)

        self.total_supply = 0
        self._shares: dict[str, int] = {}
        self._share_allowances: dict[str, dict[str, int]] = {}
        self._nonces: dict[str, int] = {}
        self._providers: list[str] = []
        self._adapters: dict[str, ProviderAdapter] = {}
        # every adapter this vault can be pointed at, by address
        self._known_adapters: dict[str, ProviderAdapter] = {}
        self.active_provider: Optional[str] = None
        self.setup_completed = False
        self._paused = {PausableAction.DEPOSIT: True, PausableAction.WITHDRAW: False}

        for adapter in (*available_providers, *providers):
            self._register_adapter(adapter)
        self._apply_providers(providers)

    def participants(self):
        adapters = [self._adapters[p] for p in self._providers]
        return (self, self.events, self.asset, self.asset.events, *adapters)

    # Views

    def total_assets(self) -> int:
        return sum(self._adapters[p].balance_of(self.address, self.address) for p in self._providers)

    def balance_of(self, account: str) -> int:
        return self._shares.get(to_address(account), 0)

    def balance_of_asset(self, account: str) -> int:
        return self.convert_to_assets(self.balance_of(account))

    def allowance(self, owner: str, spender: str) -> int:
        return self._share_allowances.get(to_address(owner), {}).get(to_address(spender), 0)

    def get_providers(self) -> list[str]:
        return list(self._providers)

    def adapter(self, provider) -> ProviderAdapter:
        address = to_address(provider)
        if address not in self._adapters:
            raise ProviderNotRegistered(f"{address} is not a provider of {self.vault_id}")
        return self._adapters[address]

    def is_provider(self, provider) -> bool:
        try:
            return to_address(provider) in self._adapters
        except InvalidInput:
            return False

    def paused(self, action: PausableAction) -> bool:
        return self._paused[PausableAction(action)]

    def convert_to_shares(self, assets: int, rounding: Rounding = Rounding.FLOOR) -> int:
        supply = self.total_supply
        if supply == 0:
            return assets
        total = self.total_assets()
        if total == 0:
            raise VaultHoldsNoAssets(f"{self.vault_id} has {supply} shares but no assets")
        return mul_div(assets, supply, total, rounding)

    def convert_to_assets(self, shares: int, rounding: Rounding = Rounding.FLOOR) -> int:
        supply = self.total_supply
        if supply == 0:
            return shares
        return mul_div(shares, self.total_assets(), supply, rounding)

    def preview_deposit(self, assets: int) -> int:
        return self.convert_to_shares(assets, Rounding.FLOOR)

    def preview_mint(self, shares: int) -> int:
        return self.convert_to_assets(shares, Rounding.CEIL)

    def preview_withdraw(self, assets: int) -> int:
        return self.convert_to_shares(assets, Rounding.CEIL)

    def preview_redeem(self, shares: int) -> int:
        return self.convert_to_assets(shares, Rounding.FLOOR)

    def get_vault_capacity(self) -> int:
        if self.paused(PausableAction.DEPOSIT):
            return 0
        if not self.config.has_limits:
            return MAX_UINT256
        return max(self.config.vault_deposit_limit - self.total_assets(), 0)

    def max_deposit(self, receiver: str) -> int:
        capacity = self.get_vault_capacity()
        if capacity == 0 or not self.config.has_limits:
            return capacity
        user_room = max(self.config.user_deposit_limit - self.balance_of_asset(receiver), 0)
        return min(user_room, capacity)

    def max_mint(self, receiver: str) -> int:
        assets = self.max_deposit(receiver)
        if assets == MAX_UINT256:
            return MAX_UINT256
        return self.convert_to_shares(assets)

    def max_withdraw(self, owner: str) -> int:
        if self.paused(PausableAction.WITHDRAW):
            return 0
        return self.preview_redeem(self.balance_of(owner))

    def max_redeem(self, owner: str) -> int:
        if self.paused(PausableAction.WITHDRAW):
            return 0
        return self.balance_of(owner)

    # Depositor operations

    @critical_section
    def setup_vault(self, assets: int, *, caller: str) -> int:
        caller = require_address(caller)
        if self.setup_completed:
            raise VaultAlreadySetUp(f"{self.vault_id} is already set up")
        self._check_amount(assets)
        if assets < self.config.min_deposit_amount:
            raise AmountLessThanMin(f"{assets} is below {self.config.min_deposit_amount}")
        shares = self.preview_deposit(assets)
        self.setup_completed = True
        self._paused[PausableAction.DEPOSIT] = False
        self._deposit(caller, self.address, assets, shares)
        self.events.emit("VaultSetup", caller=caller)
        return shares

    @critical_section
    def deposit(self, assets: int, receiver: str, *, caller: str) -> int:
        caller, receiver = require_address(caller), require_address(receiver)
        self._check_amount(assets)
        self._require_not_paused(PausableAction.DEPOSIT)
        if assets < self.config.min_deposit_amount:
            raise AmountLessThanMin(f"{assets} is below {self.config.min_deposit_amount}")
        if assets > self.max_deposit(receiver):
            raise DepositMoreThanMax(f"{assets} exceeds what {receiver} may deposit")
        shares = self.preview_deposit(assets)
        if shares == 0:
            raise InvalidInput(f"Deposit of {assets} mints no shares")
        self._deposit(caller, receiver, assets, shares)
        return shares

    @critical_section
    def mint(self, shares: int, receiver: str, *, caller: str) -> int:
        caller, receiver = require_address(caller), require_address(receiver)
        self._check_amount(shares)
        self._require_not_paused(PausableAction.DEPOSIT)
        if shares > self.max_mint(receiver):
            raise DepositMoreThanMax(f"{shares} shares exceed what {receiver} may mint")
        assets = self.preview_mint(shares)
        if assets < self.config.min_deposit_amount:
            raise AmountLessThanMin(f"{assets} is below {self.config.min_deposit_amount}")
        self._deposit(caller, receiver, assets, shares)
        return assets

    @critical_section
    def withdraw(self, assets: int, receiver: str, owner: str, *, caller: str) -> int:
        caller = require_address(caller)
        receiver, owner = require_address(receiver), require_address(owner)
        self._check_amount(assets)
        self._require_not_paused(PausableAction.WITHDRAW)
        # over-requests are capped to what the owner's shares are worth
        assets = min(assets, self.max_withdraw(owner))
        if assets == 0:
            raise InvalidInput(f"{owner} has nothing to withdraw")
        shares = self.preview_withdraw(assets)
        self._withdraw(caller, receiver, owner, assets, shares)
        return shares

    @critical_section
    def redeem(self, shares: int, receiver: str, owner: str, *, caller: str) -> int:
        caller = require_address(caller)
        receiver, owner = require_address(receiver), require_address(owner)
        self._check_amount(shares)
        self._require_not_paused(PausableAction.WITHDRAW)
        shares = min(shares, self.max_redeem(owner))
        assets = self.preview_redeem(shares)
        if assets == 0:
            raise InvalidInput(f"{owner} has nothing to redeem")
        self._withdraw(caller, receiver, owner, assets, shares)
        return assets

    # Share token

    @critical_section
    def transfer(self, to: str, shares: int, *, caller: str) -> bool:
        self._move_shares(require_address(caller), require_address(to), shares)
        return True

    @critical_section
    def approve(self, spender: str, shares: int, *, caller: str) -> bool:
        owner, spender = require_address(caller), require_address(spender)
        if not isinstance(shares, int) or shares < 0:
            raise InvalidInput(f"Invalid amount {shares!r}")
        self._share_allowances.setdefault(owner, {})[spender] = shares
        self.events.emit("Approval", owner=owner, spender=spender, shares=shares)
        return True

    @critical_section
    def transfer_from(self, owner: str, to: str, shares: int, *, caller: str) -> bool:
        spender, owner = require_address(caller), require_address(owner)
        self._spend_share_allowance(owner, spender, shares)
        self._move_shares(owner, require_address(to), shares)
        return True

    # Permit

    def nonces(self, owner: str) -> int:
        return self._nonces.get(to_address(owner), 0)

    def permit_domain(self) -> dict:
        return {"name": self.name, "version": "1", "chainId": self.chain_id, "verifyingContract": self.address}

    def permit_typed_data(self, owner: str, spender: str, shares: int, deadline: int) -> dict:
        """Typed data ``owner`` signs to let ``spender`` move ``shares`` until ``deadline``, at the current nonce."""
        owner, spender = require_address(owner), require_address(spender)
        return permit_typed_data(self.permit_domain(), owner, spender, shares, self.nonces(owner), deadline)

    @critical_section
    def permit(self, owner: str, spender: str, shares: int, deadline: int, signature) -> bool:
        """Approve ``spender`` on behalf of ``owner`` from a signed message; anyone may relay it."""
        owner, spender = require_address(owner), require_address(spender)
        if not isinstance(shares, int) or shares < 0:
            raise InvalidInput(f"Invalid amount {shares!r}")
        if not isinstance(deadline, int) or deadline < 0:
            raise InvalidInput(f"Invalid deadline {deadline!r}")
        if self.clock() > deadline:
            raise ExpiredDeadline(f"Permit expired at {deadline}")

        typed_data = self.permit_typed_data(owner, spender, shares, deadline)
        try:
            signer = recover_typed_data_signer(typed_data, signature)
        except Exception as exc:
            raise InvalidSignature(f"Malformed permit signature: {exc}") from exc
        if signer != owner:
            raise InvalidSignature(f"Permit signed by {signer}, not {owner}")

        self._nonces[owner] = self.nonces(owner) + 1
        self._share_allowances.setdefault(owner, {})[spender] = shares
        self.events.emit("Approval", owner=owner, spender=spender, shares=shares)
        return True

    # Governor

    @critical_section
    def set_providers(self, providers: Sequence[ProviderAdapter], *, caller: str) -> None:
        self._require_governor(caller)
        self._apply_providers(providers)

    @critical_section
    def set_treasury(self, treasury: str, *, caller: str) -> None:
        self._require_governor(caller)
        self.config.treasury = require_address(treasury)
        self.events.emit("TreasuryChanged", treasury=self.config.treasury)

    # Admin

    @critical_section
    def set_active_provider(self, provider, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        self._activate_provider(provider)

    @critical_section
    def set_withdraw_fee(self, rate: int, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        validate_withdraw_fee(rate)
        self.config.withdraw_fee_rate = rate
        self.events.emit("FeesChanged", withdraw_fee_rate=rate)

    @critical_section
    def set_min_deposit_amount(self, amount: int, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        self._check_amount(amount)
        self.config.min_deposit_amount = amount
        self.events.emit("MinAmountChanged", min_amount=amount)

    @critical_section
    def set_deposit_limits(self, user_limit: int, vault_limit: int, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        if user_limit is None or vault_limit is None:
            raise InvalidInput("Both deposit limits are required")
        validate_deposit_limits(user_limit, vault_limit)
        self.config.user_deposit_limit = user_limit
        self.config.vault_deposit_limit = vault_limit
        self.events.emit("DepositLimitsChanged", user_limit=user_limit, vault_limit=vault_limit)

    @critical_section
    def pause(self, action: PausableAction, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        self._require_not_paused(action)
        self._set_paused(action, True, caller)

    @critical_section
    def unpause(self, action: PausableAction, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        if not self.paused(action):
            raise ActionNotPaused(f"{PausableAction(action).name} is not paused")
        self._set_paused(action, False, caller)

    @critical_section
    def pause_force_all(self, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        for action in PausableAction:
            self._paused[action] = True
        self.events.emit("PausedForceAll", account=to_address(caller))

    @critical_section
    def unpause_force_all(self, *, caller: str) -> None:
        self.access_manager.check_role(ADMIN_ROLE, caller)
        for action in PausableAction:
            self._paused[action] = False
        self.events.emit("UnpausedForceAll", account=to_address(caller))

    # Custody helpers, only called from inside a critical section

    def _deposit_to_provider(self, provider, amount: int) -> None:
        adapter = self.adapter(provider)
        before = adapter.balance_of(self.address, self.address)
        self.asset.transfer(self.address, adapter.address, amount)
        try:
            ok = adapter.deposit(amount, self.address)
        except Exception as exc:
            raise ProviderCallFailed(f"{adapter.identifier()} deposit raised {exc!r}") from exc
        credited = adapter.balance_of(self.address, self.address) - before
        if not ok or credited < amount:
            raise ProviderCallFailed(f"{adapter.identifier()} credited {credited} of {amount}")

    def _withdraw_from_provider(self, provider, amount: int) -> None:
        adapter = self.adapter(provider)
        before = self.asset.balance_of(self.address)
        try:
            ok = adapter.withdraw(amount, self.address)
        except Exception as exc:
            raise ProviderCallFailed(f"{adapter.identifier()} withdraw raised {exc!r}") from exc
        received = self.asset.balance_of(self.address) - before
        if not ok or received != amount:
            raise ProviderCallFailed(f"{adapter.identifier()} returned {received} of {amount}")

    def _register_adapter(self, adapter: ProviderAdapter) -> None:
        if not isinstance(adapter, ProviderAdapter):
            raise InvalidInput(f"{adapter!r} is not a provider adapter")
        self._known_adapters[require_address(adapter)] = adapter

    def provider_balance(self, provider) -> int:
        return self.adapter(provider).balance_of(self.address, self.address)

    # Durable state

    def export_state(self) -> dict:
        with self.lock:
            return {
                "vault_id": self.vault_id,
                "contract_address": self.address,
                "asset_address": self.asset.address,
                "governor": self.governor,
                "treasury": self.config.treasury,
                "min_deposit_amount": self.config.min_deposit_amount,
                "withdraw_fee_rate": self.config.withdraw_fee_rate,
                "user_deposit_limit": self.config.user_deposit_limit,
                "vault_deposit_limit": self.config.vault_deposit_limit,
                "active_provider": self.active_provider,
                "setup_completed": self.setup_completed,
                "deposit_paused": self.paused(PausableAction.DEPOSIT),
                "withdraw_paused": self.paused(PausableAction.WITHDRAW),
                "providers": self.get_providers(),
            }

    @critical_section
    def import_state(self, state: dict) -> None:
        """Reapply configuration saved by ``export_state``. Balances are not part of it."""
        if state["asset_address"] != self.asset.address:
            raise InvalidInput(f"Stored state of {self.vault_id} is for another asset")
        adapters = [self._resolve_adapter(address) for address in state["providers"]]
        if not adapters:
            raise InvalidInput(f"Stored state of {self.vault_id} has no providers")
        self.config = VaultConfig(
            min_deposit_amount=state["min_deposit_amount"],
            withdraw_fee_rate=state["withdraw_fee_rate"],
            treasury=state["treasury"],
            user_deposit_limit=state["user_deposit_limit"],
            vault_deposit_limit=state["vault_deposit_limit"],
        )
        self.governor = require_address(state["governor"])
        self._providers = [adapter.address for adapter in adapters]
        self._adapters = {adapter.address: adapter for adapter in adapters}
        active = state["active_provider"]
        self.active_provider = active if active in self._adapters else self._providers[0]
        self.setup_completed = state["setup_completed"]
        self._paused = {
            PausableAction.DEPOSIT: state["deposit_paused"],
            PausableAction.WITHDRAW: state["withdraw_paused"],
        }
        logger.info("Restored %s with providers %s", self.vault_id, self._providers)

    # Internals

    def _deposit(self, caller: str, receiver: str, assets: int, shares: int) -> None:
        self.asset.transfer_from(self.address, caller, self.address, assets)
        self._deposit_to_provider(self.active_provider, assets)
        self._mint_shares(receiver, shares)
        self.events.emit("Deposit", sender=caller, receiver=receiver, assets=assets, shares=shares)

    def _withdraw(self, caller: str, receiver: str, owner: str, assets: int, shares: int) -> None:
        if caller != owner:
            self._spend_share_allowance(owner, caller, shares)
        self._burn_shares(owner, shares)
        self._withdraw_from_provider(self.active_provider, assets)
        fee = assets * self.config.withdraw_fee_rate // PRECISION_CONSTANT
        if fee:
            self.asset.transfer(self.address, self.config.treasury, fee)
        self.asset.transfer(self.address, receiver, assets - fee)
        self.events.emit(
            "Withdraw", sender=caller, receiver=receiver, owner=owner, assets=assets, shares=shares
        )
        self.events.emit("FeesCharged", treasury=self.config.treasury, assets=assets, fee=fee)

    def _resolve_adapter(self, entry) -> ProviderAdapter:
        if isinstance(entry, str):
            address = require_address(entry)
            if address not in self._known_adapters:
                raise InvalidInput(f"No adapter known at {address}")
            return self._known_adapters[address]
        if not isinstance(entry, ProviderAdapter):
            raise InvalidInput(f"{entry!r} is not a provider adapter")
        require_address(entry)
        self._register_adapter(entry)
        return entry

    def _apply_providers(self, providers: Sequence[ProviderAdapter]) -> None:
        if not providers:
            raise InvalidInput("At least one provider is required")
        adapters: dict[str, ProviderAdapter] = {}
        for entry in providers:
            adapter = self._resolve_adapter(entry)
            if adapter.address in adapters:
                raise InvalidInput(f"Duplicate provider {adapter.address}")
            adapters[adapter.address] = adapter

        for address in self._providers:
            if address not in adapters:
                self.asset.approve(self.address, address, 0)
        for address in adapters:
            self.asset.approve(self.address, address, MAX_UINT256)

        self._providers = list(adapters)
        self._adapters = adapters
        if self.active_provider not in adapters:
            self.active_provider = self._providers[0]
        self.events.emit("ProvidersChanged", providers=list(self._providers))

    def _activate_provider(self, provider) -> None:
        adapter = self.adapter(provider)
        self.active_provider = adapter.address
        self.events.emit("ActiveProviderChanged", provider=adapter.address)

    def _require_governor(self, caller: str) -> None:
        if to_address(caller) != self.governor:
            raise CallerIsNotGovernor(f"{caller} is not the governor of {self.vault_id}")

    def _require_not_paused(self, action: PausableAction) -> None:
        if self.paused(action):
            raise ActionPaused(f"{PausableAction(action).name} is paused")

    def _set_paused(self, action: PausableAction, paused: bool, caller: str) -> None:
        action = PausableAction(action)
        self._paused[action] = paused
        self.events.emit("Paused" if paused else "Unpaused", account=to_address(caller), action=int(action))

    def _mint_shares(self, to: str, shares: int) -> None:
        self._shares[to] = self._shares.get(to, 0) + shares
        self.total_supply += shares
        self.events.emit("Transfer", sender=None, to=to, shares=shares)

    def _burn_shares(self, owner: str, shares: int) -> None:
        balance = self._shares.get(owner, 0)
        if balance < shares:
            raise InsufficientBalance(f"{owner} holds {balance} shares, needs {shares}")
        self._shares[owner] = balance - shares
        self.total_supply -= shares
        self.events.emit("Transfer", sender=owner, to=None, shares=shares)

    def _move_shares(self, sender: str, to: str, shares: int) -> None:
        self._check_amount(shares)
        balance = self._shares.get(sender, 0)
        if balance < shares:
            raise InsufficientBalance(f"{sender} holds {balance} shares, needs {shares}")
        self._shares[sender] = balance - shares
        self._shares[to] = self._shares.get(to, 0) + shares
        self.events.emit("Transfer", sender=sender, to=to, shares=shares)

    def _spend_share_allowance(self, owner: str, spender: str, shares: int) -> None:
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if current < shares:
            raise InsufficientAllowance(f"{spender} may spend {current} shares of {owner}, needs {shares}")
        self._share_allowances[owner][spender] = current - shares

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidInput(f"Invalid amount {amount!r}")

    def __repr__(self) -> str:
        return f"Vault({self.vault_id!r}, {self.address})"
