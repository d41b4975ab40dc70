from typing import List

from fastapi import APIRouter

import schemas
from api.api_v1.deps import CallerDep, ProtocolDep, SessionDep
from core.constants import PausableAction
from services.state_store import save_vault
from services.vault import Vault

router = APIRouter()


def _to_schema(vault: Vault) -> schemas.Vault:
    with vault.lock:
        providers = [
            schemas.ProviderInfo(
                address=address,
                identifier=vault.adapter(address).identifier(),
                balance=vault.provider_balance(address),
                rate_of_return=vault.adapter(address).rate_of_return(vault.address),
                is_active=address == vault.active_provider,
            )
            for address in vault.get_providers()
        ]
        return schemas.Vault(
            vault_id=vault.vault_id,
            name=vault.name,
            contract_address=vault.address,
            asset_address=vault.asset.address,
            asset_symbol=vault.asset.symbol,
            treasury=vault.config.treasury,
            governor=vault.governor,
            min_deposit_amount=vault.config.min_deposit_amount,
            withdraw_fee_rate=vault.config.withdraw_fee_rate,
            user_deposit_limit=vault.config.user_deposit_limit,
            vault_deposit_limit=vault.config.vault_deposit_limit,
            total_assets=vault.total_assets(),
            total_supply=vault.total_supply,
            vault_capacity=vault.get_vault_capacity(),
            active_provider=vault.active_provider,
            setup_completed=vault.setup_completed,
            deposit_paused=vault.paused(PausableAction.DEPOSIT),
            withdraw_paused=vault.paused(PausableAction.WITHDRAW),
            providers=providers,
        )


@router.get("/", response_model=List[schemas.Vault])
async def get_all_vaults(protocol: ProtocolDep):
    return [_to_schema(vault) for vault in protocol.vaults.values()]


@router.get("/{vault_id}", response_model=schemas.Vault)
async def get_vault_info(protocol: ProtocolDep, vault_id: str):
    return _to_schema(protocol.vault(vault_id))


@router.get("/{vault_id}/positions/{account}", response_model=schemas.Position)
async def get_position(protocol: ProtocolDep, vault_id: str, account: str):
    vault = protocol.vault(vault_id)
    with vault.lock:
        shares = vault.balance_of(account)
        return schemas.Position(
            vault_id=vault_id,
            account=account,
            shares=shares,
            assets=vault.convert_to_assets(shares),
            max_deposit=vault.max_deposit(account),
            max_withdraw=vault.max_withdraw(account),
            max_redeem=vault.max_redeem(account),
        )


@router.post("/{vault_id}/deposit", response_model=schemas.VaultActionResponse)
def deposit(
    session: SessionDep, protocol: ProtocolDep, caller: CallerDep, vault_id: str, req: schemas.DepositRequest
):
    vault = protocol.vault(vault_id)
    shares = vault.deposit(req.assets, req.receiver, caller=caller)
    save_vault(session, vault)
    session.commit()
    return schemas.VaultActionResponse(vault_id=vault_id, assets=req.assets, shares=shares)


@router.post("/{vault_id}/mint", response_model=schemas.VaultActionResponse)
def mint(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, vault_id: str, req: schemas.MintRequest):
    vault = protocol.vault(vault_id)
    assets = vault.mint(req.shares, req.receiver, caller=caller)
    save_vault(session, vault)
    session.commit()
    return schemas.VaultActionResponse(vault_id=vault_id, assets=assets, shares=req.shares)


@router.post("/{vault_id}/withdraw", response_model=schemas.VaultActionResponse)
def withdraw(
    session: SessionDep, protocol: ProtocolDep, caller: CallerDep, vault_id: str, req: schemas.WithdrawRequest
):
    vault = protocol.vault(vault_id)
    with vault.lock:
        shares = vault.withdraw(req.assets, req.receiver, req.owner, caller=caller)
        assets = vault.events.last("Withdraw").args["assets"]
    save_vault(session, vault)
    session.commit()
    return schemas.VaultActionResponse(vault_id=vault_id, assets=assets, shares=shares)


@router.post("/{vault_id}/redeem", response_model=schemas.VaultActionResponse)
def redeem(session: SessionDep, protocol: ProtocolDep, caller: CallerDep, vault_id: str, req: schemas.RedeemRequest):
    vault = protocol.vault(vault_id)
    with vault.lock:
        assets = vault.redeem(req.shares, req.receiver, req.owner, caller=caller)
        shares = vault.events.last("Withdraw").args["shares"]
    save_vault(session, vault)
    session.commit()
    return schemas.VaultActionResponse(vault_id=vault_id, assets=assets, shares=shares)


@router.get("/{vault_id}/allowances/{owner}/{spender}", response_model=schemas.Allowance)
async def get_allowance(protocol: ProtocolDep, vault_id: str, owner: str, spender: str):
    vault = protocol.vault(vault_id)
    return schemas.Allowance(vault_id=vault_id, owner=owner, spender=spender, shares=vault.allowance(owner, spender))


@router.get("/{vault_id}/permit-data/{owner}", response_model=schemas.PermitData)
async def get_permit_data(protocol: ProtocolDep, vault_id: str, owner: str, spender: str, shares: int, deadline: int):
    vault = protocol.vault(vault_id)
    with vault.lock:
        typed_data = vault.permit_typed_data(owner, spender, shares, deadline)
        return schemas.PermitData(owner=owner, nonce=vault.nonces(owner), typed_data=typed_data)


@router.post("/{vault_id}/permit", response_model=schemas.Allowance)
def permit(protocol: ProtocolDep, vault_id: str, req: schemas.PermitRequest):
    vault = protocol.vault(vault_id)
    vault.permit(req.owner, req.spender, req.shares, req.deadline, req.signature)
    return schemas.Allowance(
        vault_id=vault_id, owner=req.owner, spender=req.spender, shares=vault.allowance(req.owner, req.spender)
    )
