"""
modules/state.py — Lifecycle state records
============================================
Flat collections owned by the lifecycle, keyed by scalar ids:
    SubjectState   keyed by lowercase subject address
    Ledger.tickets keyed by QR token
    Ledger.leaves  attendance leaves in insertion order

Every record has a to_dict()/from_dict() pair. Subject records are versioned
({"version": 1, ...}) so a state store can refuse data it does not understand.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from core.attestation import Attestation
from core.blockchain import AnchorResult
from core.clock import from_iso
from core.commitment import Commitment
from core.hashing import from_hex, to_hex
from core.ticket import Ticket

STATE_VERSION = 1

BASE_SCORE = 50
SCORE_PER_EVENT = 5
MAX_SCORE = 100


def age_category(age: int) -> str:
    if age >= 21:
        return "21+"
    if age >= 18:
        return "18+"
    return "minor"


def reputation_tier(score: int) -> str:
    if score >= 80:
        return "Gold"
    if score >= 60:
        return "Silver"
    return "Bronze"


# ── Reputation ───────────────────────────────────────────────────────────────
@dataclass
class AttendanceEntry:
    leaf: bytes
    event_id: str
    attended_at: str
    event_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "leaf": to_hex(self.leaf),
            "eventId": self.event_id,
            "attendedAt": self.attended_at,
            "eventName": self.event_name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttendanceEntry":
        return cls(
            leaf=from_hex(data["leaf"]),
            event_id=data["eventId"],
            attended_at=data["attendedAt"],
            event_name=data.get("eventName"),
        )


@dataclass
class Reputation:
    score: int = BASE_SCORE
    attendance: int = 0
    leaves: List[AttendanceEntry] = field(default_factory=list)

    @property
    def floor(self) -> int:
        """Lowest score the attendance record allows."""
        return min(MAX_SCORE, BASE_SCORE + SCORE_PER_EVENT * self.attendance)

    @property
    def tier(self) -> str:
        return reputation_tier(self.score)

    def record(self, entry: AttendanceEntry):
        self.leaves.append(entry)
        self.attendance = len(self.leaves)
        self.score = min(MAX_SCORE, self.score + SCORE_PER_EVENT)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "attendance": self.attendance,
            "leaves": [entry.to_dict() for entry in self.leaves],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Reputation":
        if not data:
            return cls()
        leaves = [AttendanceEntry.from_dict(item) for item in data.get("leaves", [])]
        return cls(score=int(data.get("score", BASE_SCORE)), attendance=len(leaves), leaves=leaves)


# ── Subject ──────────────────────────────────────────────────────────────────
@dataclass
class SubjectState:
    subject: str
    credential: dict
    fingerprint: bytes
    age: int
    issued_at: str
    expires_at: str
    attestations: Dict[str, Attestation] = field(default_factory=dict)
    commitments: Dict[str, Commitment] = field(default_factory=dict)
    anchors: Dict[str, AnchorResult] = field(default_factory=dict)
    reputation: Reputation = field(default_factory=Reputation)
    revoked: bool = False
    revoked_at: Optional[str] = None
    history: List[dict] = field(default_factory=list)

    @property
    def credential_id(self) -> str:
        return self.credential["id"]

    @property
    def is_adult(self) -> bool:
        return self.age >= 18

    @property
    def age_category(self) -> str:
        return age_category(self.age)

    def is_expired(self, now: datetime) -> bool:
        return now >= from_iso(self.expires_at)

    def is_active(self, now: datetime) -> bool:
        return not self.revoked and not self.is_expired(now)

    def archive(self) -> dict:
        """Summary kept in `history` when the subject is re-issued."""
        return {
            "credentialId": self.credential_id,
            "fingerprint": to_hex(self.fingerprint),
            "issuedAt": self.issued_at,
            "revokedAt": self.revoked_at,
        }

    def to_dict(self) -> dict:
        return {
            "version": STATE_VERSION,
            "subject": self.subject,
            "credential": self.credential,
            "fingerprint": to_hex(self.fingerprint),
            "age": self.age,
            "issuedAt": self.issued_at,
            "expiresAt": self.expires_at,
            "attestations": {claim: att.to_dict() for claim, att in self.attestations.items()},
            "commitments": {name: c.to_dict() for name, c in self.commitments.items()},
            "anchors": {chain: result.to_dict() for chain, result in self.anchors.items()},
            "reputation": self.reputation.to_dict(),
            "revoked": self.revoked,
            "revokedAt": self.revoked_at,
            "history": list(self.history),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SubjectState":
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported subject record version: {version!r}")
        return cls(
            subject=data["subject"],
            credential=data["credential"],
            fingerprint=from_hex(data["fingerprint"]),
            age=int(data["age"]),
            issued_at=data["issuedAt"],
            expires_at=data["expiresAt"],
            attestations={
                claim: Attestation.from_dict(item) for claim, item in data.get("attestations", {}).items()
            },
            commitments={
                name: Commitment.from_dict(item) for name, item in data.get("commitments", {}).items()
            },
            anchors={
                chain: AnchorResult.from_dict(item) for chain, item in data.get("anchors", {}).items()
            },
            reputation=Reputation.from_dict(data.get("reputation")),
            revoked=bool(data.get("revoked", False)),
            revoked_at=data.get("revokedAt"),
            history=list(data.get("history", [])),
        )


# ── Registrations, tickets & activity ────────────────────────────────────────
@dataclass
class Registration:
    subject: str
    event_id: str
    qr_token: str
    ticket_hash: str
    disclosures: Dict[str, bool]
    attestation_claims: List[str]
    registered_at: str
    checked_in: bool = False
    attendance: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "eventId": self.event_id,
            "qrToken": self.qr_token,
            "ticketHash": self.ticket_hash,
            "disclosures": dict(self.disclosures),
            "attestationClaims": list(self.attestation_claims),
            "registeredAt": self.registered_at,
            "checkedIn": self.checked_in,
            "attendance": self.attendance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Registration":
        return cls(
            subject=data["subject"],
            event_id=data["eventId"],
            qr_token=data["qrToken"],
            ticket_hash=data["ticketHash"],
            disclosures=dict(data.get("disclosures", {})),
            attestation_claims=list(data.get("attestationClaims", [])),
            registered_at=data["registeredAt"],
            checked_in=bool(data.get("checkedIn", False)),
            attendance=data.get("attendance"),
        )


@dataclass
class ActivityEntry:
    action: str
    timestamp: str
    details: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"action": self.action, "timestamp": self.timestamp, **self.details}

    @classmethod
    def from_dict(cls, data: dict) -> "ActivityEntry":
        details = {k: v for k, v in data.items() if k not in ("action", "timestamp")}
        return cls(action=data["action"], timestamp=data["timestamp"], details=details)


@dataclass
class Ledger:
    """Everything the lifecycle owns that is not keyed by subject."""

    leaves: List[bytes] = field(default_factory=list)
    tickets: Dict[str, Ticket] = field(default_factory=dict)
    registrations: Dict[str, List[Registration]] = field(default_factory=dict)
    activity: Dict[str, List[ActivityEntry]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "version": STATE_VERSION,
            "leaves": [to_hex(leaf) for leaf in self.leaves],
            "tickets": {token: ticket.to_dict() for token, ticket in self.tickets.items()},
            "registrations": {
                event_id: [reg.to_dict() for reg in regs] for event_id, regs in self.registrations.items()
            },
            "activity": {
                subject: [entry.to_dict() for entry in entries] for subject, entries in self.activity.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Ledger":
        if not data:
            return cls()
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported ledger record version: {version!r}")
        return cls(
            leaves=[from_hex(leaf) for leaf in data.get("leaves", [])],
            tickets={token: Ticket.from_dict(item) for token, item in data.get("tickets", {}).items()},
            registrations={
                event_id: [Registration.from_dict(item) for item in regs]
                for event_id, regs in data.get("registrations", {}).items()
            },
            activity={
                subject: [ActivityEntry.from_dict(item) for item in entries]
                for subject, entries in data.get("activity", {}).items()
            },
        )
