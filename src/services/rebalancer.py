import logging

from core.constants import MAX_REBALANCE_FEE, MAX_UINT256, OPERATOR_ROLE, PRECISION_CONSTANT
from core.errors import ExcessRebalanceFee, InvalidInput, ProviderCallFailed
from services.access_manager import AccessManager
from services.vault import Vault
from utils.atomic import critical_section
from utils.web3_utils import derive_address

logger = logging.getLogger(__name__)


class VaultRebalancer:
    """Moves a vault's funds between its registered providers, skimming a capped fee.

    Shares the vault's lock and event log, so a rebalance is indistinguishable from any
    other vault operation to observers.
    """

    def __init__(self, vault: Vault, access_manager: AccessManager | None = None):
        self.vault = vault
        self.access_manager = access_manager or vault.access_manager
        self.address = derive_address(f"rebalancer:{vault.vault_id}")
        self.events = vault.events

    @property
    def lock(self):
        return self.vault.lock

    @property
    def vault_id(self) -> str:
        return self.vault.vault_id

    def participants(self):
        return self.vault.participants()

    def resolve_amount(self, assets: int, from_provider) -> int:
        """``MAX_UINT256`` stands for the whole balance held at ``from_provider``."""
        if assets == MAX_UINT256:
            return self.vault.provider_balance(from_provider)
        return assets

    @critical_section
    def rebalance(
        self,
        assets: int,
        from_provider,
        to_provider,
        fee: int,
        activate_to: bool = False,
        *,
        caller: str,
    ) -> bool:
        self.access_manager.check_role(OPERATOR_ROLE, caller)
        source = self.vault.adapter(from_provider)
        target = self.vault.adapter(to_provider)
        if source.address == target.address:
            raise InvalidInput("Cannot rebalance a provider into itself")

        balance = self.vault.provider_balance(source)
        assets = self.resolve_amount(assets, source)
        if not isinstance(assets, int) or assets <= 0 or assets > balance:
            raise InvalidInput(f"Cannot move {assets} out of {source.identifier()} holding {balance}")
        if not isinstance(fee, int) or fee < 0:
            raise InvalidInput(f"Invalid fee {fee!r}")
        if fee > assets * MAX_REBALANCE_FEE // PRECISION_CONSTANT:
            raise ExcessRebalanceFee(f"Fee {fee} exceeds the cap on {assets}")

        self.vault._withdraw_from_provider(source, assets)
        self.vault._deposit_to_provider(target, assets - fee)
        if fee:
            self.vault.asset.transfer(self.vault.address, self.vault.config.treasury, fee)
        if activate_to:
            self.vault._activate_provider(target)

        self.events.emit(
            "VaultRebalance",
            assets=assets,
            assets_to=assets - fee,
            source=source.address,
            target=target.address,
        )
        return True


class RewardsForwarder:
    """Collects reward tokens a provider hands out and forwards them to the distributor."""

    def __init__(self, rebalancer: VaultRebalancer, distributor):
        self.rebalancer = rebalancer
        self.vault = rebalancer.vault
        self.distributor = distributor
        self.events = rebalancer.events

    @property
    def lock(self):
        return self.vault.lock

    def participants(self):
        tokens = []
        for provider in self.vault.get_providers():
            for token in getattr(self.vault.adapter(provider), "reward_tokens", ()):
                tokens.extend((token, token.events))
        return (*self.vault.participants(), *tokens)

    @critical_section
    def harvest(self, provider, *, caller: str) -> list[tuple[str, int]]:
        self.rebalancer.access_manager.check_role(OPERATOR_ROLE, caller)
        adapter = self.vault.adapter(provider)
        harvest = getattr(adapter, "harvest", None)
        if harvest is None:
            raise InvalidInput(f"{adapter.identifier()} does not hand out rewards")
        try:
            rewards = harvest(self.vault.address)
        except Exception as exc:
            raise ProviderCallFailed(f"{adapter.identifier()} harvest raised {exc!r}") from exc

        forwarded = []
        for token, amount in rewards:
            if not amount:
                continue
            token.transfer(self.vault.address, self.distributor.address, amount)
            self.events.emit("RewardsTransferred", token=token.address, amount=amount)
            forwarded.append((token.address, amount))
        return forwarded
