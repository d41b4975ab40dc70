import json
from typing import Any

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_typed_data
from hexbytes import HexBytes
from web3 import Web3

from core.constants import ZERO_ADDRESS
from core.errors import InvalidInput


def to_address(value: Any) -> str:
    """Checksum anything that looks like an address, or an object exposing ``address``."""
    if hasattr(value, "address"):
        value = value.address
    if not isinstance(value, str) or not Web3.is_address(value):
        raise InvalidInput(f"Invalid address {value!r}")
    return Web3.to_checksum_address(value)


def require_address(value: Any) -> str:
    address = to_address(value)
    if address == ZERO_ADDRESS:
        raise InvalidInput("Zero address")
    return address


def keccak_hex(data: bytes) -> str:
    return Web3.to_hex(Web3.keccak(data))


def derive_address(label: str) -> str:
    """Stable address for an in-process component, taken from the hash of its label."""
    return Web3.to_checksum_address("0x" + bytes(Web3.keccak(text=label))[-20:].hex())


def abi_encode(types: list[str], values: list[Any]) -> bytes:
    return encode(types, values)


def to_bytes32(value: str | bytes) -> bytes:
    data = HexBytes(value)
    if len(data) != 32:
        raise InvalidInput(f"Expected 32 bytes, got {len(data)}")
    return bytes(data)


def canonical_json(value: Any) -> str:
    """Deterministic JSON used when hashing call payloads; objects are referenced by address."""

    def _default(obj):
        if hasattr(obj, "address"):
            return to_address(obj.address)
        if isinstance(obj, (bytes, bytearray)):
            return Web3.to_hex(obj)
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        raise TypeError(f"Cannot encode {type(obj).__name__}")

    return json.dumps(value, default=_default, sort_keys=True, separators=(",", ":"))


PERMIT_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Permit": [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
    ],
}


def permit_typed_data(domain: dict, owner: str, spender: str, value: int, nonce: int, deadline: int) -> dict:
    return {
        "types": PERMIT_TYPES,
        "primaryType": "Permit",
        "domain": domain,
        "message": {
            "owner": owner,
            "spender": spender,
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        },
    }


def sign_typed_data(typed_data: dict, private_key) -> str:
    signed = Account.sign_message(encode_typed_data(full_message=typed_data), private_key)
    return Web3.to_hex(signed.signature)


def recover_typed_data_signer(typed_data: dict, signature) -> str:
    """Address that signed ``typed_data``. ``signature`` is 65 bytes (hex or raw) or a ``(v, r, s)`` tuple."""
    message = encode_typed_data(full_message=typed_data)
    if isinstance(signature, (tuple, list)):
        v, r, s = signature
        return Account.recover_message(message, vrs=(v, r, s))
    return Account.recover_message(message, signature=HexBytes(signature))
