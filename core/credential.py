"""
core/credential.py — Credential Builder
=========================================
Creates the RacePass credential for a KYC-verified subject, MACs it, and
derives the 32-byte fingerprint that an external chain anchors.

The credential carries NO personal data: name, DOB and ID number are consumed
by validation upstream and never reach this module's output.
"""

import hmac
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from core.clock import to_iso
from core.errors import NotInitialized
from core.hashing import canonical_json, keccak256, normalize_address, sha256, to_bytes32

logger = logging.getLogger("racepass.credential")

CREDENTIAL_ID_PREFIX = "racepass:"
PROOF_TYPE = "HmacSha256"


def build_credential(
    subject: str,
    issued_at: datetime,
    issuer: str = "did:racepass:issuer",
    ttl_days: int = 365,
) -> dict:
    """Assemble an unsigned credential for `subject`, valid for `ttl_days`."""
    subject = normalize_address(subject)
    return {
        "id": f"{CREDENTIAL_ID_PREFIX}{uuid.uuid4()}",
        "type": ["VerifiableCredential", "RacePassCredential"],
        "issuer": issuer,
        "issuanceDate": to_iso(issued_at),
        "expirationDate": to_iso(issued_at + timedelta(days=ttl_days)),
        "subject": subject,
        "verification": {
            "type": "KYC",
            "status": "verified",
            "verifiedAt": to_iso(issued_at),
        },
    }


def _mac(credential: dict, secret: str) -> str:
    unsigned = {k: v for k, v in credential.items() if k != "proof"}
    return sha256(canonical_json(unsigned) + secret.encode("utf-8")).hex()


def sign_credential(credential: dict, secret: str, created_at: datetime) -> dict:
    """
    Return a copy of `credential` with its proof block:
        proof.value = hex(SHA-256(canonical_json(credential without proof) ‖ secret))
    """
    if not secret:
        raise NotInitialized("Credential MAC secret is not configured.")
    signed = {k: v for k, v in credential.items() if k != "proof"}
    signed["proof"] = {
        "type": PROOF_TYPE,
        "created": to_iso(created_at),
        "value": _mac(signed, secret),
    }
    return signed


def verify_credential(credential: dict, secret: str) -> bool:
    """Recompute the MAC and compare in constant time."""
    if not secret:
        raise NotInitialized("Credential MAC secret is not configured.")
    proof = credential.get("proof")
    if not isinstance(proof, dict) or proof.get("type") != PROOF_TYPE:
        return False
    value = proof.get("value")
    if not isinstance(value, str):
        return False
    return hmac.compare_digest(value, _mac(credential, secret))


def credential_fingerprint(credential: dict) -> bytes:
    """keccak256 over canonical JSON of {id, subject, issuanceDate, proof.value}."""
    proof: Optional[dict] = credential.get("proof")
    fingerprint_data = {
        "id": credential["id"],
        "subject": credential["subject"],
        "issuanceDate": credential["issuanceDate"],
        "proof": proof.get("value") if proof else None,
    }
    return keccak256(canonical_json(fingerprint_data))


def verify_fingerprint(credential: dict, fingerprint) -> bool:
    return hmac.compare_digest(credential_fingerprint(credential), to_bytes32(fingerprint))
