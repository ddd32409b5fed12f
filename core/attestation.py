"""
core/attestation.py — Signed boolean attestations
===================================================
The issuer signs:
    claimHash   = keccak256(utf8(claim))
    messageHash = keccak256(abi.encodePacked(address subject, bytes32 claimHash, uint256 nonce))
    signature   = personal_sign(messageHash)

Anyone holding (subject, claim, nonce, signature) can recover the issuer
without learning the data behind the claim. Replay protection is the
verifier's job: the signer never tracks used nonces.

Claim grammar (case-sensitive, byte-compared):
    identityVerified
    countryResident:<ISO-3166-1 alpha-2>
    ageAbove:<0..255>
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from core.clock import to_iso
from core.crypto import IssuerKeyService, split_signature
from core.eligibility import EligibilityDecision, EventRequirements, evaluate
from core.errors import UnknownClaim
from core.hashing import (
    checksum_address,
    from_hex,
    keccak256,
    normalize_address,
    solidity_keccak,
    to_hex,
)

logger = logging.getLogger("racepass.attestation")

IDENTITY_VERIFIED = "identityVerified"
UINT64_MAX = 2 ** 64 - 1

_CLAIM_RE = re.compile(r"^(?:identityVerified|countryResident:[A-Z]{2}|ageAbove:(0|[1-9][0-9]{0,2}))$")


def validate_claim(claim: str) -> str:
    if not isinstance(claim, str):
        raise UnknownClaim()
    match = _CLAIM_RE.fullmatch(claim)
    if not match or (match.group(1) is not None and int(match.group(1)) > 255):
        raise UnknownClaim()
    return claim


def age_claim(min_age: int) -> str:
    return validate_claim(f"ageAbove:{min_age}")


def country_claim(country: str) -> str:
    return validate_claim(f"countryResident:{country}")


def claim_hash(claim: str) -> bytes:
    return keccak256(claim.encode("utf-8"))


def attestation_message_hash(subject: str, claim: str, nonce: int) -> bytes:
    return solidity_keccak(
        ["address", "bytes32", "uint256"],
        [subject, claim_hash(claim), nonce],
    )


@dataclass(frozen=True)
class Attestation:
    subject: str
    claim: str
    nonce: int
    claim_hash: bytes
    message_hash: bytes
    signature: bytes
    issuer: str
    created_at: str = ""

    @property
    def v(self) -> int:
        return split_signature(self.signature)[0]

    @property
    def r(self) -> str:
        return split_signature(self.signature)[1]

    @property
    def s(self) -> str:
        return split_signature(self.signature)[2]

    def proof(self) -> dict:
        """Wire form handed to a verifier or contract."""
        return {
            "claim": self.claim,
            "claimHash": to_hex(self.claim_hash),
            "nonce": self.nonce,
            "signature": to_hex(self.signature),
            "v": self.v,
            "r": self.r,
            "s": self.s,
        }

    def to_dict(self) -> dict:
        data = self.proof()
        data.update({
            "subject": self.subject,
            "messageHash": to_hex(self.message_hash),
            "issuer": self.issuer,
            "createdAt": self.created_at,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Attestation":
        return cls(
            subject=data["subject"],
            claim=data["claim"],
            nonce=int(data["nonce"]),
            claim_hash=from_hex(data["claimHash"]),
            message_hash=from_hex(data["messageHash"]),
            signature=from_hex(data["signature"]),
            issuer=data["issuer"],
            created_at=data.get("createdAt", ""),
        )


@dataclass
class EligibilityProofs:
    decision: EligibilityDecision
    attestations: List[Attestation] = field(default_factory=list)

    @property
    def disclosures(self) -> Dict[str, bool]:
        return self.decision.disclosures


class AttestationService:
    def __init__(self, issuer: IssuerKeyService):
        self._issuer = issuer

    def sign(self, subject: str, claim: str, nonce: int, created_at: Optional[datetime] = None) -> Attestation:
        subject = normalize_address(subject)
        validate_claim(claim)
        if isinstance(nonce, bool) or not isinstance(nonce, int) or not 0 <= nonce <= UINT64_MAX:
            raise ValueError("nonce must be a uint64")

        message_hash = attestation_message_hash(subject, claim, nonce)
        signature = self._issuer.personal_sign(message_hash)
        return Attestation(
            subject=subject,
            claim=claim,
            nonce=nonce,
            claim_hash=claim_hash(claim),
            message_hash=message_hash,
            signature=signature,
            issuer=self._issuer.address(),
            created_at=to_iso(created_at) if created_at else "",
        )

    def verify(self, attestation: Attestation) -> bool:
        """
        Recompute the message hash from (subject, claim, nonce) and check the
        signature recovers to both the recorded and the configured issuer.
        Revocation is NOT checked here.
        """
        try:
            validate_claim(attestation.claim)
            message_hash = attestation_message_hash(attestation.subject, attestation.claim, attestation.nonce)
            if message_hash != attestation.message_hash:
                return False
            recovered = self._issuer.recover_personal(message_hash, attestation.signature)
        except Exception as exc:  # malformed signature / subject → not verifiable
            logger.debug(f"Attestation recovery failed: {exc.__class__.__name__}")
            return False
        return recovered.lower() == attestation.issuer.lower() and self._issuer.is_issuer(recovered)

    def generate_eligibility(
        self,
        subject: str,
        age: int,
        country: str,
        requirements: EventRequirements,
        base_nonce: int,
        created_at: Optional[datetime] = None,
        decision: Optional[EligibilityDecision] = None,
    ) -> EligibilityProofs:
        """
        Evaluate `requirements` and sign one attestation per emitted claim,
        with nonces base, base+1, base+2 in claim order. A caller that has
        already evaluated passes its `decision` and nothing is re-evaluated.
        """
        if decision is None:
            decision = evaluate(age, country, requirements)
        attestations = [
            self.sign(subject, claim, base_nonce + offset, created_at)
            for offset, claim in enumerate(decision.claims)
        ] if decision.eligible else []
        logger.info(
            f"Eligibility for {checksum_address(subject)[:10]}...: "
            f"eligible={decision.eligible} claims={len(attestations)}"
        )
        return EligibilityProofs(decision=decision, attestations=attestations)
