"""
core/hashing.py — Hashing & Encoding
=====================================
Every digest that has to agree with an on-chain contract is produced here.

Provides:
- keccak-256 / SHA-256 over raw bytes
- Solidity "abi.encodePacked" byte packing (address, string, uintN, bytes32)
- canonical JSON (sorted keys, no whitespace) for credential hashing
- 0x-hex <-> bytes conversions and SubjectId (account address) normalisation

Packing matches the chain: fixed-size values are right-aligned to their own
width, strings are raw UTF-8 with no length prefix. A signature recovered
off-chain over keccak256(pack(...)) is the same one ecrecover sees on-chain.
"""

import hashlib
import json
import re
from typing import Any, Sequence, Union

from eth_abi.packed import encode_packed
from web3 import Web3

from core.errors import InvalidSubject

ZERO_BYTES32 = b"\x00" * 32

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_UINT_RE = re.compile(r"^uint(8|16|24|32|40|48|56|64|72|80|88|96|104|112|120|128|"
                      r"136|144|152|160|168|176|184|192|200|208|216|224|232|240|248|256)$")


# ── Digests ───────────────────────────────────────────────────────────────────
def keccak256(data: bytes) -> bytes:
    """Ethereum keccak-256 (not NIST SHA3-256)."""
    return bytes(Web3.keccak(data))


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def canonical_json(data: Any) -> bytes:
    """Deterministic JSON: sorted keys, no whitespace, UTF-8."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


# ── Hex ───────────────────────────────────────────────────────────────────────
def to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def from_hex(value: str) -> bytes:
    """Decode a 0x-prefixed, even-length hex string."""
    if not isinstance(value, str) or not value.startswith("0x"):
        raise ValueError("hex value must be a 0x-prefixed string")
    body = value[2:]
    if len(body) % 2:
        raise ValueError("hex value must have even length")
    return bytes.fromhex(body)


def to_bytes32(value: Union[str, bytes]) -> bytes:
    raw = from_hex(value) if isinstance(value, str) else bytes(value)
    if len(raw) != 32:
        raise ValueError(f"expected 32 bytes, got {len(raw)}")
    return raw


# ── SubjectId ─────────────────────────────────────────────────────────────────
def normalize_address(value: Union[str, bytes]) -> str:
    """
    Canonical SubjectId: "0x" + 40 lowercase hex characters.
    Accepts raw 20 bytes or a 0x-prefixed hex string in any letter case.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise InvalidSubject()
        return "0x" + bytes(value).hex()
    if not isinstance(value, str) or not _ADDRESS_RE.fullmatch(value):
        raise InvalidSubject()
    return value.lower()


def address_to_bytes(value: Union[str, bytes]) -> bytes:
    return bytes.fromhex(normalize_address(value)[2:])


def checksum_address(value: Union[str, bytes]) -> str:
    """EIP-55 display form. Never used as a map key."""
    return Web3.to_checksum_address(normalize_address(value))


# ── Packing ───────────────────────────────────────────────────────────────────
def pack_solidity(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """
    Non-standard packed encoding, identical to Solidity's abi.encodePacked
    for the supported types: address, string, uint8..uint256, bytes32.
    """
    if len(types) != len(values):
        raise ValueError("types and values must have the same length")

    prepared = []
    for abi_type, value in zip(types, values):
        if abi_type == "address":
            prepared.append(checksum_address(value))
        elif abi_type == "string":
            if not isinstance(value, str):
                raise TypeError("string values must be str")
            prepared.append(value)
        elif abi_type == "bytes32":
            prepared.append(to_bytes32(value))
        elif _UINT_RE.fullmatch(abi_type):
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"{abi_type} values must be int")
            prepared.append(value)
        else:
            raise ValueError(f"unsupported packed type: {abi_type}")

    return encode_packed(list(types), prepared)


def solidity_keccak(types: Sequence[str], values: Sequence[Any]) -> bytes:
    return keccak256(pack_solidity(types, values))
