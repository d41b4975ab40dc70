"""Saves and restores the durable part of a deployment.

Only configuration survives a restart: vault parameters with their provider list and
pause flags, the timelock queue and delay, and the distributor root, pause flag and
claimed amounts. Balances live in the providers and tokens, not here.
"""

import json
import logging

from sqlalchemy import delete
from sqlmodel import Session, select

from models import DistributorState, PendingTransaction, RewardClaim, TimelockState, VaultProvider, VaultState
from services.protocol import Protocol
from services.rewards_distributor import RewardsDistributor
from services.timelock import Timelock
from services.vault import Vault

logger = logging.getLogger(__name__)


def _to_str(value):
    return None if value is None else str(value)


def _to_int(value):
    return None if value is None else int(value)


def save_vault(session: Session, vault: Vault) -> None:
    state = vault.export_state()
    row = session.get(VaultState, state["vault_id"]) or VaultState(
        vault_id=state["vault_id"],
        contract_address=state["contract_address"],
        asset_address=state["asset_address"],
        governor=state["governor"],
        treasury=state["treasury"],
        min_deposit_amount="0",
        withdraw_fee_rate="0",
    )
    row.contract_address = state["contract_address"]
    row.asset_address = state["asset_address"]
    row.governor = state["governor"]
    row.treasury = state["treasury"]
    row.min_deposit_amount = str(state["min_deposit_amount"])
    row.withdraw_fee_rate = str(state["withdraw_fee_rate"])
    row.user_deposit_limit = _to_str(state["user_deposit_limit"])
    row.vault_deposit_limit = _to_str(state["vault_deposit_limit"])
    row.active_provider = state["active_provider"]
    row.setup_completed = state["setup_completed"]
    row.deposit_paused = state["deposit_paused"]
    row.withdraw_paused = state["withdraw_paused"]
    session.add(row)

    session.exec(delete(VaultProvider).where(VaultProvider.vault_id == state["vault_id"]))
    for position, address in enumerate(state["providers"]):
        session.add(VaultProvider(vault_id=state["vault_id"], position=position, provider_address=address))


def load_vault(session: Session, vault: Vault) -> bool:
    row = session.get(VaultState, vault.vault_id)
    if row is None:
        return False
    providers = session.exec(
        select(VaultProvider).where(VaultProvider.vault_id == vault.vault_id).order_by(VaultProvider.position)
    ).all()
    vault.import_state(
        {
            "vault_id": row.vault_id,
            "contract_address": row.contract_address,
            "asset_address": row.asset_address,
            "governor": row.governor,
            "treasury": row.treasury,
            "min_deposit_amount": int(row.min_deposit_amount),
            "withdraw_fee_rate": int(row.withdraw_fee_rate),
            "user_deposit_limit": _to_int(row.user_deposit_limit),
            "vault_deposit_limit": _to_int(row.vault_deposit_limit),
            "active_provider": row.active_provider,
            "setup_completed": row.setup_completed,
            "deposit_paused": row.deposit_paused,
            "withdraw_paused": row.withdraw_paused,
            "providers": [p.provider_address for p in providers],
        }
    )
    return True


def save_timelock(session: Session, timelock: Timelock) -> None:
    state = timelock.export_state()
    row = session.get(TimelockState, state["name"]) or TimelockState(
        name=state["name"], contract_address=state["contract_address"], owner=state["owner"], delay=state["delay"]
    )
    row.contract_address = state["contract_address"]
    row.owner = state["owner"]
    row.pending_owner = state["pending_owner"]
    row.delay = state["delay"]
    session.add(row)

    session.exec(delete(PendingTransaction).where(PendingTransaction.timelock_name == state["name"]))
    for tx in timelock.queued.values():
        session.add(
            PendingTransaction(
                tx_hash=tx.key,
                timelock_name=state["name"],
                target=tx.target,
                value=str(tx.value),
                signature=tx.signature,
                data=json.dumps(tx.data),
                eta=tx.eta,
            )
        )


def load_timelock(session: Session, timelock: Timelock) -> bool:
    row = session.get(TimelockState, timelock.name)
    if row is None:
        return False
    pending = session.exec(
        select(PendingTransaction).where(PendingTransaction.timelock_name == timelock.name)
    ).all()
    timelock.import_state(
        {
            "owner": row.owner,
            "pending_owner": row.pending_owner,
            "delay": row.delay,
            "queued": [
                {
                    "target": tx.target,
                    "value": int(tx.value),
                    "signature": tx.signature,
                    "data": json.loads(tx.data),
                    "eta": tx.eta,
                }
                for tx in pending
            ],
        }
    )
    return True


def save_distributor(session: Session, distributor: RewardsDistributor) -> None:
    state = distributor.export_state()
    row = session.get(DistributorState, state["name"]) or DistributorState(
        name=state["name"], contract_address=state["contract_address"]
    )
    row.contract_address = state["contract_address"]
    row.merkle_root = state["merkle_root"]
    row.paused = state["paused"]
    session.add(row)

    session.exec(delete(RewardClaim).where(RewardClaim.distributor_name == state["name"]))
    for account, tokens in state["claimed"].items():
        for token, amount in tokens.items():
            session.add(
                RewardClaim(distributor_name=state["name"], account=account, token=token, claimed=str(amount))
            )


def load_distributor(session: Session, distributor: RewardsDistributor) -> bool:
    row = session.get(DistributorState, distributor.name)
    if row is None:
        return False
    claims = session.exec(select(RewardClaim).where(RewardClaim.distributor_name == distributor.name)).all()
    claimed: dict[str, dict[str, int]] = {}
    for claim in claims:
        claimed.setdefault(claim.account, {})[claim.token] = int(claim.claimed)
    distributor.import_state({"merkle_root": row.merkle_root, "paused": row.paused, "claimed": claimed})
    return True


def save_protocol(session: Session, protocol: Protocol) -> None:
    for vault in protocol.vaults.values():
        save_vault(session, vault)
    save_timelock(session, protocol.timelock)
    save_distributor(session, protocol.distributor)
    session.commit()
    logger.info("Saved state of %d vaults", len(protocol.vaults))


def load_protocol(session: Session, protocol: Protocol) -> bool:
    """Apply whatever was saved to a freshly built protocol. Returns False when nothing was saved."""
    restored = [load_vault(session, vault) for vault in protocol.vaults.values()]
    restored.append(load_timelock(session, protocol.timelock))
    restored.append(load_distributor(session, protocol.distributor))
    if any(restored):
        logger.info("Restored saved state")
    return any(restored)
