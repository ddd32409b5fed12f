"""
core/commitment.py — Hiding commitments
commitment = keccak256(abi.encodePacked(string value, bytes32 secret))

The secret is 32 CSPRNG bytes; hiding rests on its entropy, binding on
keccak pre-image resistance.
"""

import hmac
import secrets
from dataclasses import dataclass
from typing import Union

from core.errors import BadCommitment
from core.hashing import from_hex, solidity_keccak, to_hex

SECRET_LENGTH = 32


@dataclass(frozen=True)
class Commitment:
    commitment: bytes
    secret: bytes
    value: str = ""     # only populated on the call that created it

    def public(self) -> str:
        return to_hex(self.commitment)

    def to_dict(self) -> dict:
        # value is never persisted
        return {"commitment": to_hex(self.commitment), "secret": to_hex(self.secret)}

    @classmethod
    def from_dict(cls, data: dict) -> "Commitment":
        return cls(commitment=from_hex(data["commitment"]), secret=from_hex(data["secret"]))


def _coerce(raw: Union[bytes, str]) -> bytes:
    try:
        data = from_hex(raw) if isinstance(raw, str) else bytes(raw)
    except (TypeError, ValueError) as exc:
        raise BadCommitment() from exc
    if len(data) != 32:
        raise BadCommitment()
    return data


def commit(value, secret: bytes = None) -> Commitment:
    value = str(value)
    secret = _coerce(secret) if secret is not None else secrets.token_bytes(SECRET_LENGTH)
    digest = solidity_keccak(["string", "bytes32"], [value, secret])
    return Commitment(commitment=digest, secret=secret, value=value)


def open_commitment(value, secret: Union[bytes, str], commitment: Union[bytes, str]) -> bool:
    """True iff `commitment` was produced by commit(value, secret)."""
    expected = solidity_keccak(["string", "bytes32"], [str(value), _coerce(secret)])
    return hmac.compare_digest(expected, _coerce(commitment))
