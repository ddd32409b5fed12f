"""
core/merkle.py — Sorted-pair Merkle engine for attendance
===========================================================
Construction:
    level 0  = leaves sorted ascending as bytes
    parent   = keccak256(min(a, b) ‖ max(a, b))
    odd node = promoted unchanged to the next level (not duplicated)
    empty    = root of 32 zero bytes

Proofs are sibling hashes only; the verifier sorts (acc, sibling) at every
step, so it needs nothing beyond (leaf, proof, root).

Leaves and internal nodes share one hash domain (no prefix byte).
"""

import hmac
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from core.hashing import ZERO_BYTES32, keccak256, solidity_keccak

logger = logging.getLogger("racepass.merkle")


def hash_pair(a: bytes, b: bytes) -> bytes:
    if b < a:
        a, b = b, a
    return keccak256(a + b)


def attendance_leaf(subject: str, event_id: str) -> bytes:
    """keccak256(abi.encodePacked(address subject, string eventId))"""
    return solidity_keccak(["address", "string"], [subject, event_id])


@dataclass
class MerkleTree:
    levels: List[List[bytes]] = field(default_factory=lambda: [[]])
    root: bytes = ZERO_BYTES32

    @property
    def leaves(self) -> List[bytes]:
        return self.levels[0]

    def index_of(self, leaf: bytes) -> int:
        return self.levels[0].index(leaf)


def build_tree(leaves: Sequence[bytes]) -> MerkleTree:
    if not leaves:
        return MerkleTree()

    layer = sorted(bytes(leaf) for leaf in leaves)
    levels = [layer]
    while len(layer) > 1:
        next_layer = []
        for i in range(0, len(layer), 2):
            if i + 1 < len(layer):
                next_layer.append(hash_pair(layer[i], layer[i + 1]))
            else:
                next_layer.append(layer[i])
        layer = next_layer
        levels.append(layer)

    return MerkleTree(levels=levels, root=layer[0])


def get_proof(tree: MerkleTree, leaf_index: int) -> List[bytes]:
    """Sibling path for the leaf at `leaf_index` of the sorted level 0."""
    if not 0 <= leaf_index < len(tree.levels[0]):
        raise IndexError(f"leaf index {leaf_index} out of range")

    proof = []
    index = leaf_index
    for level in tree.levels[:-1]:
        sibling = index ^ 1
        if sibling < len(level):
            proof.append(level[sibling])
        index >>= 1
    return proof


def verify_proof(leaf: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    acc = bytes(leaf)
    for sibling in proof:
        acc = hash_pair(acc, bytes(sibling))
    return hmac.compare_digest(acc, bytes(root))


class AttendanceLog:
    """
    Append-only attendance leaves plus the tree snapshot derived from them.
    The snapshot is rebuilt from scratch on every append, so `root` always
    equals build_tree(leaves).root.
    """

    def __init__(self, leaves: Optional[Sequence[bytes]] = None):
        self._leaves: List[bytes] = [bytes(leaf) for leaf in (leaves or [])]
        self._tree = build_tree(self._leaves)

    def __len__(self) -> int:
        return len(self._leaves)

    @property
    def leaves(self) -> List[bytes]:
        return list(self._leaves)

    @property
    def tree(self) -> MerkleTree:
        return self._tree

    @property
    def root(self) -> bytes:
        return self._tree.root

    def append_leaf(self, leaf: bytes) -> bytes:
        self._leaves.append(bytes(leaf))
        self._tree = build_tree(self._leaves)
        logger.info(f"Attendance log: {len(self._leaves)} leaves, root {self._tree.root.hex()[:16]}...")
        return self._tree.root

    def proof_for(self, leaf: bytes) -> List[bytes]:
        return get_proof(self._tree, self._tree.index_of(bytes(leaf)))
