"""
core/errors.py — Error Taxonomy
================================
Every failure the core reports is a RacePassError carrying a
(kind, code, message) triple. Messages are safe to show to users:
they never contain names, dates of birth, ID numbers, nonces or signatures.

Kinds:
    validation — malformed input (subject, name, DOB, ID, age, claim)
    flow       — the request conflicts with existing state
    policy     — a lifecycle rule refuses the request
    crypto     — key material missing or a signature/commitment did not check out
    external   — an anchor adapter failed (recorded, never fatal to issuance)
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    FLOW = "flow"
    POLICY = "policy"
    CRYPTO = "crypto"
    EXTERNAL = "external"


class RacePassError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    code: str = "error"
    default_message: str = "Request failed."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "code": self.code, "message": self.message}


# ── Validation ────────────────────────────────────────────────────────────────
class ValidationFailure(RacePassError):
    kind = ErrorKind.VALIDATION


class InvalidSubject(ValidationFailure):
    code = "invalid_subject"
    default_message = "Subject must be a 20-byte hex account address."


class InvalidName(ValidationFailure):
    code = "invalid_name"
    default_message = "Full name is required."


class InvalidDob(ValidationFailure):
    code = "invalid_dob"
    default_message = "Date of birth must be a real date in YYYY-MM-DD form."


class InvalidId(ValidationFailure):
    code = "invalid_id"
    default_message = "National ID number must be exactly 12 digits."


class InvalidAge(ValidationFailure):
    code = "invalid_age"
    default_message = "Derived age is out of range."


class UnknownClaim(ValidationFailure):
    code = "unknown_claim"
    default_message = "Claim is not part of the supported claim grammar."


class InvalidAttendance(ValidationFailure):
    code = "invalid_attendance"
    default_message = "Attendance status must be 'present' or 'absent'."


# ── Flow ──────────────────────────────────────────────────────────────────────
class FlowError(RacePassError):
    kind = ErrorKind.FLOW


class DuplicateSubject(FlowError):
    code = "duplicate_subject"
    default_message = "This account already has an active RacePass. Revoke it first to re-register."


class AlreadyRegistered(FlowError):
    code = "already_registered"
    default_message = "Already registered for this event."


class EventFull(FlowError):
    code = "event_full"
    default_message = "Event is full."


class AlreadyUsed(FlowError):
    code = "already_used"
    default_message = "Ticket has already been used."


class InvalidTicket(FlowError):
    code = "invalid_ticket"
    default_message = "Invalid ticket: not found."


class UnknownEvent(FlowError):
    code = "unknown_event"
    default_message = "Event not found."


class EventInactive(FlowError):
    code = "event_inactive"
    default_message = "Event is not active."


# ── Policy ────────────────────────────────────────────────────────────────────
class PolicyError(RacePassError):
    kind = ErrorKind.POLICY


class RateLimited(PolicyError):
    code = "rate_limited"
    default_message = "Too many requests. Please wait a minute and try again."


class Revoked(PolicyError):
    code = "revoked"
    default_message = "This credential has been revoked."


class Expired(PolicyError):
    code = "expired"
    default_message = "This RacePass has expired. Please renew."


class NoCredential(PolicyError):
    code = "no_credential"
    default_message = "No RacePass credential found. Please complete KYC first."


class AgeRestricted(PolicyError):
    code = "age_restricted"
    default_message = "The age requirement for this event is not met."


class NotOrganizer(PolicyError):
    code = "not_organizer"
    default_message = "Only the organizer can change this event."


# ── Crypto ────────────────────────────────────────────────────────────────────
class CryptoError(RacePassError):
    kind = ErrorKind.CRYPTO


class NotInitialized(CryptoError):
    code = "not_initialized"
    default_message = "Issuer key material is not initialized."


class SignatureMismatch(CryptoError):
    code = "signature_mismatch"
    default_message = "Signature does not recover to the configured issuer."


class BadCommitment(CryptoError):
    code = "bad_commitment"
    default_message = "Commitment or secret is malformed."


# ── External ──────────────────────────────────────────────────────────────────
class ExternalError(RacePassError):
    kind = ErrorKind.EXTERNAL


class AnchorUnavailable(ExternalError):
    code = "anchor_unavailable"
    default_message = "Anchor backend is not configured or unreachable."


class AnchorFailure(ExternalError):
    code = "anchor_failure"
    default_message = "Anchor backend rejected the fingerprint."

    def __init__(self, chain: str, reason: str):
        self.chain = chain
        self.reason = reason
        super().__init__(f"Anchoring on {chain} failed: {reason}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"chain": self.chain, "reason": self.reason})
        return data
