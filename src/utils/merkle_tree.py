"""Merkle trees compatible with OpenZeppelin's ``StandardMerkleTree``.

Leaves are ``keccak256(keccak256(abi.encode(values)))`` and inner nodes hash the sorted
pair of their children, so a proof verifies without knowing the position of the leaf.
The tree is kept in the flat array layout the JS library uses, which makes roots and
proofs produced here interchangeable with the ones produced off-chain by that library.
"""

from dataclasses import dataclass
from typing import Any, Sequence

from web3 import Web3

from core.errors import InvalidInput
from utils.web3_utils import abi_encode, to_bytes32


def leaf_hash(types: Sequence[str], value: Sequence[Any]) -> bytes:
    return bytes(Web3.keccak(Web3.keccak(abi_encode(list(types), list(value)))))


def hash_pair(a: bytes, b: bytes) -> bytes:
    return bytes(Web3.keccak(b"".join(sorted((a, b)))))


def process_proof(leaf: bytes, proof: Sequence[str | bytes]) -> bytes:
    computed = leaf
    for node in proof:
        computed = hash_pair(computed, to_bytes32(node))
    return computed


def verify_proof(root: str | bytes, leaf: bytes, proof: Sequence[str | bytes]) -> bool:
    return process_proof(leaf, proof) == to_bytes32(root)


def _left_child(i: int) -> int:
    return 2 * i + 1


def _right_child(i: int) -> int:
    return 2 * i + 2


def _parent(i: int) -> int:
    return (i - 1) // 2


def _sibling(i: int) -> int:
    return i + 1 if i % 2 == 1 else i - 1


@dataclass(frozen=True)
class _IndexedLeaf:
    value_index: int
    hash: bytes


class StandardMerkleTree:
    def __init__(self, tree: list[bytes], values: list[tuple[Any, int]], types: Sequence[str]):
        self._tree = tree
        # (value, tree index)
        self._values = values
        self.types = list(types)

    @classmethod
    def of(cls, values: Sequence[Sequence[Any]], types: Sequence[str]) -> "StandardMerkleTree":
        if not values:
            raise InvalidInput("Expected non-zero number of leaves")

        hashed = [_IndexedLeaf(i, leaf_hash(types, v)) for i, v in enumerate(values)]
        hashed.sort(key=lambda leaf: leaf.hash)

        tree: list[bytes] = [b""] * (2 * len(hashed) - 1)
        indexed_values: list[tuple[Any, int]] = [(tuple(v), 0) for v in values]
        for position, leaf in enumerate(hashed):
            tree_index = len(tree) - 1 - position
            tree[tree_index] = leaf.hash
            indexed_values[leaf.value_index] = (indexed_values[leaf.value_index][0], tree_index)

        for i in range(len(tree) - 1 - len(hashed), -1, -1):
            tree[i] = hash_pair(tree[_left_child(i)], tree[_right_child(i)])

        return cls(tree, indexed_values, types)

    @property
    def root(self) -> str:
        return Web3.to_hex(self._tree[0])

    def __len__(self) -> int:
        return len(self._values)

    def entries(self):
        for index, (value, _) in enumerate(self._values):
            yield index, value

    def _value_index(self, value: Sequence[Any]) -> int:
        target = leaf_hash(self.types, value)
        for index, (_, tree_index) in enumerate(self._values):
            if self._tree[tree_index] == target:
                return index
        raise InvalidInput("Leaf is not in tree")

    def get_proof(self, leaf: int | Sequence[Any]) -> list[str]:
        index = leaf if isinstance(leaf, int) else self._value_index(leaf)
        tree_index = self._values[index][1]
        proof = []
        while tree_index > 0:
            proof.append(Web3.to_hex(self._tree[_sibling(tree_index)]))
            tree_index = _parent(tree_index)
        return proof

    def verify(self, leaf: int | Sequence[Any], proof: Sequence[str]) -> bool:
        value = self._values[leaf][0] if isinstance(leaf, int) else leaf
        return verify_proof(self.root, leaf_hash(self.types, value), proof)

    def dump(self) -> dict[str, Any]:
        return {
            "format": "standard-v1",
            "tree": [Web3.to_hex(node) for node in self._tree],
            "values": [
                {"value": [str(v) if isinstance(v, int) else v for v in value], "treeIndex": tree_index}
                for value, tree_index in self._values
            ],
            "leafEncoding": self.types,
        }
