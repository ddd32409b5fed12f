"""
modules/schemas.py — Request / Response schemas
=================================================
Receipts the lifecycle hands back to its caller. Field names are snake_case in
Python and camelCase on the wire (model.wire()).

None of these models has a slot for a name, date of birth, ID number,
commitment secret or MAC secret.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ── Issuance ──────────────────────────────────────────────────────────────────
class KycApplication(WireModel):
    subject: str
    name: str
    dob: str            # "YYYY-MM-DD"
    id_number: str      # 12 digits; validated and dropped, never stored


class CommitmentsView(WireModel):
    age: str
    identity: str


class CryptoProofs(WireModel):
    commitments: CommitmentsView
    attestation_types: List[str]
    issuer: str


class IssuanceReceipt(WireModel):
    subject: str
    credential_id: str
    fingerprint: str
    is_adult: bool
    age_category: str
    issued_at: str
    expires_at: str
    crypto_proofs: CryptoProofs
    anchors: Dict[str, dict]


# ── Credential fetch ─────────────────────────────────────────────────────────
class ReputationSummary(WireModel):
    score: int
    attendance: int
    tier: str


class CredentialView(WireModel):
    subject: str
    credential_id: str
    issuance_date: str
    expiration_date: str
    fingerprint: str
    is_adult: bool
    age_category: str
    revoked: bool
    revoked_at: Optional[str] = None
    reputation: ReputationSummary
    anchors: Dict[str, dict]
    crypto_proofs: CryptoProofs
    previous_credentials: int = 0


class CredentialCheck(WireModel):
    subject: str
    credential_id: str
    mac_valid: bool
    fingerprint_valid: bool


# ── Registration ─────────────────────────────────────────────────────────────
class AttestationProof(WireModel):
    claim: str
    claim_hash: str
    nonce: int
    signature: str
    v: int
    r: str
    s: str


class Disclosures(WireModel):
    age_above_min: bool
    identity_verified: bool
    country_resident: bool


class TicketProofs(WireModel):
    ticket_hash: str
    ticket_signature: str
    issuer: str
    attestations: List[AttestationProof]
    commitments: CommitmentsView


class RegistrationReceipt(WireModel):
    qr_token: str
    subject: str
    event_id: str
    disclosures: Disclosures
    crypto_proofs: TicketProofs
    registered_at: str


# ── Tickets & check-in ───────────────────────────────────────────────────────
class TicketEnvelope(WireModel):
    qr_token: str
    subject: str
    event_id: str
    event_name: Optional[str] = None
    event_venue: Optional[str] = None
    event_date: Optional[str] = None
    event_capacity: Optional[int] = None
    organizer: Optional[str] = None
    min_age: int = 0
    registered_count: int = 0
    ticket_hash: str
    signature_verified: bool
    created_at: str
    used_at: Optional[str] = None


class ScanReceipt(TicketEnvelope):
    merkle_root: str


# ── Events & organizer views ─────────────────────────────────────────────────
class RosterEntry(WireModel):
    subject: str
    qr_token: str
    registered_at: str
    disclosures: Disclosures
    attestation_claims: List[str]
    checked_in: bool = False
    attendance: Optional[str] = None


class EventSummary(WireModel):
    id: str
    name: str
    organizer: str = ""
    capacity: int
    requirements: Dict[str, Any]
    venue: str = ""
    date: str = ""
    category: str = ""
    status: str
    registered_count: int
    spots_left: int
    registrations: Optional[List[RosterEntry]] = None


class AttendanceReceipt(WireModel):
    qr_token: str
    subject: str
    event_id: str
    attendance: str
    checked_in: bool


# ── Reputation ───────────────────────────────────────────────────────────────
class AttendanceView(WireModel):
    event_id: str
    event_name: Optional[str] = None
    attended_at: str
    leaf_hash: str


class MerkleView(WireModel):
    root: str
    proof: List[str]
    leaf: Optional[str] = None


class ReputationView(WireModel):
    subject: str
    score: int
    attendance: int
    tier: str
    events: List[AttendanceView]
    merkle: MerkleView


# ── Third-party gate ─────────────────────────────────────────────────────────
class ThirdPartyResult(WireModel):
    subject: str
    verified: bool
    reason: Optional[str] = None
    event_type: str = ""
    checked_at: str
