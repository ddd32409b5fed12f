"""
modules/lifecycle.py — Credential Lifecycle
=============================================
Owns every piece of mutable RacePass state and enforces the global rules:
duplicate prevention, rate limiting, revocation, expiry, single-use tickets
and reputation updates.

Flows:
    submit   → validate → rate limit → duplicate check → build + MAC → fingerprint
               → commitments → pre-signed attestations → anchor (best-effort) → persist
    register → event active check → credential check → eligibility → attestations
               → ticket → QR → persist
    scan     → resolve QR → single-use check → verify ticket → attendance leaf
               → Merkle root → reputation → persist

All mutations are serialized through one asyncio.Lock. The only await that
happens outside the lock is the anchor call inside submit; while it runs the
subject sits in a pending set so a second submit cannot slip in. Recording the
result runs shielded from cancellation, so the pending entry is always cleared.
"""

import asyncio
import logging
import re
import secrets
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from core.attestation import IDENTITY_VERIFIED, age_claim, country_claim
from core.blockchain import AnchorAdapter, AnchorResult
from core.clock import epoch_ms, to_iso
from core.commitment import commit, open_commitment
from core.context import CoreContext
from core.credential import (
    build_credential,
    credential_fingerprint,
    sign_credential,
    verify_credential,
    verify_fingerprint,
)
from core.eligibility import EventRequirements, preview, require_eligibility
from core.errors import (
    AgeRestricted,
    AlreadyRegistered,
    AlreadyUsed,
    BadCommitment,
    DuplicateSubject,
    EventFull,
    EventInactive,
    Expired,
    ExternalError,
    InvalidAge,
    InvalidAttendance,
    InvalidDob,
    InvalidId,
    InvalidName,
    InvalidTicket,
    NoCredential,
    NotOrganizer,
    RateLimited,
    Revoked,
    SignatureMismatch,
    UnknownEvent,
)
from core.hashing import normalize_address, sha256, to_hex
from core.merkle import AttendanceLog, attendance_leaf
from core.ticket import Ticket
from db.store import MemoryStateStore, StateStore
from modules.events import DEFAULT_CAPACITY, Event, EventCatalog
from modules.rate_limit import SubjectRateLimiter
from modules.schemas import (
    AttendanceReceipt,
    AttendanceView,
    AttestationProof,
    CommitmentsView,
    CredentialCheck,
    CredentialView,
    CryptoProofs,
    Disclosures,
    EventSummary,
    IssuanceReceipt,
    KycApplication,
    MerkleView,
    RegistrationReceipt,
    ReputationSummary,
    ReputationView,
    RosterEntry,
    ScanReceipt,
    ThirdPartyResult,
    TicketEnvelope,
    TicketProofs,
)
from modules.state import (
    MAX_SCORE,
    ActivityEntry,
    AttendanceEntry,
    Ledger,
    Registration,
    SubjectState,
)

logger = logging.getLogger("racepass.lifecycle")

MAX_AGE = 150
_DOB_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
_ID_RE = re.compile(r"^[0-9]{12}$")


def derive_age(dob: datetime, today: datetime) -> int:
    """Whole years between `dob` and `today` (birthday not yet reached → one less)."""
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def validate_application(application: KycApplication, now: datetime) -> Tuple[str, int]:
    """Returns (subject, age). Name, DOB and ID number go no further than this."""
    subject = normalize_address(application.subject)

    if not application.name or not application.name.strip():
        raise InvalidName()

    dob = application.dob or ""
    if not _DOB_RE.fullmatch(dob):
        raise InvalidDob()
    try:
        born = datetime.strptime(dob, "%Y-%m-%d")
    except ValueError as exc:
        raise InvalidDob() from exc

    age = derive_age(born, now)
    if not 0 <= age <= MAX_AGE:
        raise InvalidAge()

    if not _ID_RE.fullmatch(application.id_number or ""):
        raise InvalidId()

    return subject, age


class CredentialLifecycle:
    def __init__(
        self,
        context: CoreContext,
        store: Optional[StateStore] = None,
        catalog: Optional[EventCatalog] = None,
    ):
        self.ctx = context
        self.store = store or MemoryStateStore()
        self.catalog = catalog or EventCatalog()
        self._lock = asyncio.Lock()
        self._limiter = SubjectRateLimiter(context.rate_limit_window_ms, context.rate_limit_max)
        self._subjects: Dict[str, SubjectState] = {}
        self._pending: Set[str] = set()
        self._ledger = Ledger()
        self._attendance = AttendanceLog()
        self._hydrate()

    # ── Persistence ──────────────────────────────────────────────────────────
    def _hydrate(self):
        for address in self.store.list_subjects():
            record = self.store.load_subject(address)
            if record is not None:
                self._subjects[address] = SubjectState.from_dict(record)
        self._ledger = Ledger.from_dict(self.store.load_ledger())
        self._attendance = AttendanceLog(self._ledger.leaves)
        if self._subjects or self._ledger.leaves:
            logger.info(
                f"Hydrated {len(self._subjects)} subjects, {len(self._ledger.tickets)} tickets, "
                f"{len(self._attendance)} attendance leaves"
            )

    def _save_subject(self, state: SubjectState):
        self.store.save_subject(state.subject, state.to_dict())

    def _save_ledger(self):
        self._ledger.leaves = self._attendance.leaves
        self.store.save_ledger(self._ledger.to_dict())

    def _log(self, subject: str, action: str, now: datetime, **details):
        entry = ActivityEntry(action=action, timestamp=to_iso(now), details=details)
        self._ledger.activity.setdefault(subject, []).append(entry)

    def _state(self, subject: str) -> SubjectState:
        state = self._subjects.get(subject)
        if state is None:
            raise NoCredential()
        return state

    # ── Issuance ─────────────────────────────────────────────────────────────
    def _issue(self, subject: str, age: int, now: datetime) -> SubjectState:
        """Build every artefact for a new credential. Touches no lifecycle state."""
        ctx = self.ctx
        credential = build_credential(subject, now, issuer=ctx.credential_issuer, ttl_days=ctx.ttl_days)
        signed = sign_credential(credential, ctx.mac_secret, now)
        fingerprint = credential_fingerprint(signed)

        commitments = {
            "age": replace(commit(str(age)), value=""),
            "identity": replace(commit("verified"), value=""),
        }

        claims = [IDENTITY_VERIFIED, country_claim(ctx.country)]
        if age >= 18:
            claims.append(age_claim(18))
        if age >= 21:
            claims.append(age_claim(21))

        base_nonce = epoch_ms(now)
        attestations = {}
        for offset, claim in enumerate(claims):
            attestation = ctx.attestations.sign(subject, claim, base_nonce + offset, now)
            if not ctx.attestations.verify(attestation):
                raise SignatureMismatch()
            attestations[claim] = attestation

        return SubjectState(
            subject=subject,
            credential=signed,
            fingerprint=fingerprint,
            age=age,
            issued_at=signed["issuanceDate"],
            expires_at=signed["expirationDate"],
            attestations=attestations,
            commitments=commitments,
        )

    async def _anchor_one(self, adapter: AnchorAdapter, subject: str, fingerprint: bytes) -> AnchorResult:
        try:
            result = await adapter.anchor(subject, fingerprint)
        except ExternalError as exc:
            reason = getattr(exc, "reason", exc.code)
            logger.warning(f"Anchor {adapter.name} failed: {exc.message}")
            return AnchorResult.failed(adapter.name, reason)
        except Exception as exc:
            logger.exception(f"Anchor {adapter.name} raised unexpectedly")
            return AnchorResult.failed(adapter.name, exc.__class__.__name__)
        if not result.success:
            logger.warning(f"Anchor {adapter.name} reported failure: {result.reason}")
        return result

    async def submit(self, application: KycApplication) -> IssuanceReceipt:
        async with self._lock:
            now = self.ctx.now()
            subject, age = validate_application(application, now)

            if self._limiter.hit(subject, now).exceeded:
                raise RateLimited()

            existing = self._subjects.get(subject)
            if subject in self._pending or (existing is not None and existing.is_active(now)):
                logger.info(f"Duplicate submission rejected for {subject[:10]}...")
                raise DuplicateSubject()

            state = self._issue(subject, age, now)
            self._pending.add(subject)

        logger.info(f"Credential {state.credential_id} built for {subject[:10]}..., anchoring")
        tasks = {
            adapter.name: asyncio.ensure_future(self._anchor_one(adapter, subject, state.fingerprint))
            for adapter in self.ctx.anchors
        }
        interrupted: Optional[asyncio.CancelledError] = None
        try:
            if tasks:
                await asyncio.wait(tasks.values())
        except asyncio.CancelledError as exc:
            interrupted = exc

        # Shielded: a cancelled caller still gets the credential recorded and
        # the subject released from the pending set.
        record = asyncio.ensure_future(self._record_issuance(state, tasks, now, interrupted is not None))
        while not record.done():
            try:
                await asyncio.shield(record)
            except asyncio.CancelledError as exc:
                if record.cancelled():
                    raise
                interrupted = exc
        record.result()

        if interrupted is not None:
            raise interrupted
        return self._issuance_receipt(state)

    async def _record_issuance(
        self,
        state: SubjectState,
        tasks: Dict[str, "asyncio.Future[AnchorResult]"],
        now: datetime,
        cancel_anchors: bool,
    ):
        if cancel_anchors:
            for task in tasks.values():
                task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        state.anchors = {
            name: AnchorResult.failed(name, "cancelled") if task.cancelled() else task.result()
            for name, task in tasks.items()
        }

        subject = state.subject
        async with self._lock:
            try:
                previous = self._subjects.get(subject)
                if previous is not None:
                    state.history = previous.history + [previous.archive()]
                self._subjects[subject] = state
                self._log(subject, "KYC_SUBMITTED", now, credentialId=state.credential_id)
                self._save_subject(state)
                self._save_ledger()
            finally:
                self._pending.discard(subject)

        logger.info(
            f"KYC complete for {subject[:10]}...: adult={state.is_adult}, "
            f"attestations={len(state.attestations)}, "
            f"anchored={sum(1 for r in state.anchors.values() if r.success)}/{len(state.anchors)}"
        )

    def _crypto_proofs(self, state: SubjectState) -> CryptoProofs:
        return CryptoProofs(
            commitments=self._commitments_view(state),
            attestation_types=list(state.attestations),
            issuer=self.ctx.issuer.address(),
        )

    @staticmethod
    def _commitments_view(state: SubjectState) -> CommitmentsView:
        return CommitmentsView(
            age=state.commitments["age"].public(),
            identity=state.commitments["identity"].public(),
        )

    def _issuance_receipt(self, state: SubjectState) -> IssuanceReceipt:
        return IssuanceReceipt(
            subject=state.subject,
            credential_id=state.credential_id,
            fingerprint=to_hex(state.fingerprint),
            is_adult=state.is_adult,
            age_category=state.age_category,
            issued_at=state.issued_at,
            expires_at=state.expires_at,
            crypto_proofs=self._crypto_proofs(state),
            anchors={name: result.to_dict() for name, result in state.anchors.items()},
        )

    # ── Credential queries ───────────────────────────────────────────────────
    def fetch(self, subject: str) -> CredentialView:
        """Credential summary for the subject. No secrets, no personal data."""
        state = self._state(normalize_address(subject))
        return CredentialView(
            subject=state.subject,
            credential_id=state.credential_id,
            issuance_date=state.credential["issuanceDate"],
            expiration_date=state.credential["expirationDate"],
            fingerprint=to_hex(state.fingerprint),
            is_adult=state.is_adult,
            age_category=state.age_category,
            revoked=state.revoked,
            revoked_at=state.revoked_at,
            reputation=ReputationSummary(
                score=state.reputation.score,
                attendance=state.reputation.attendance,
                tier=state.reputation.tier,
            ),
            anchors={name: result.to_dict() for name, result in state.anchors.items()},
            crypto_proofs=self._crypto_proofs(state),
            previous_credentials=len(state.history),
        )

    def verify_credential(self, subject: str) -> CredentialCheck:
        state = self._state(normalize_address(subject))
        return CredentialCheck(
            subject=state.subject,
            credential_id=state.credential_id,
            mac_valid=verify_credential(state.credential, self.ctx.mac_secret),
            fingerprint_valid=verify_fingerprint(state.credential, state.fingerprint),
        )

    def open_commitment(self, subject: str, name: str, value) -> bool:
        """Check a claimed value (e.g. the age) against the subject's stored commitment."""
        state = self._state(normalize_address(subject))
        commitment = state.commitments.get(name)
        if commitment is None:
            raise BadCommitment(f"No commitment named {name!r}.")
        return open_commitment(value, commitment.secret, commitment.commitment)

    def activity(self, subject: str) -> List[dict]:
        entries = self._ledger.activity.get(normalize_address(subject), [])
        return [entry.to_dict() for entry in entries]

    async def anchor_status(self, subject: str) -> Dict[str, bool]:
        subject = normalize_address(subject)
        return {adapter.name: await adapter.is_anchored(subject) for adapter in self.ctx.anchors}

    # ── Revocation ───────────────────────────────────────────────────────────
    async def revoke(self, subject: str) -> str:
        """Mark the credential revoked; a second call is a no-op. Returns revokedAt."""
        async with self._lock:
            subject = normalize_address(subject)
            state = self._state(subject)
            if state.revoked:
                return state.revoked_at

            now = self.ctx.now()
            state.revoked = True
            state.revoked_at = to_iso(now)
            self._log(
                subject, "CREDENTIAL_REVOKED", now,
                credentialId=state.credential_id,
                revokedAt=state.revoked_at,
                method="self_revocation",
            )
            self._save_subject(state)
            self._save_ledger()

        logger.info(f"RacePass revoked for {subject[:10]}... (credential preserved for audit)")
        return state.revoked_at

    # ── Event registration ───────────────────────────────────────────────────
    def _requirements_for(
        self, event_id: str, requirements: Optional[EventRequirements]
    ) -> Tuple[EventRequirements, int, Optional[str]]:
        event = self.catalog.get(event_id)
        if event is None:
            return requirements or EventRequirements(), DEFAULT_CAPACITY, None
        if not event.is_active:
            raise EventInactive()
        return requirements or event.requirements, event.capacity, event.name

    def _check_active(self, state: SubjectState, now: datetime):
        if state.revoked:
            raise Revoked()
        if state.is_expired(now):
            raise Expired()

    def eligibility_preview(self, subject: str, requirements: Optional[EventRequirements] = None,
                            event_id: Optional[str] = None) -> dict:
        """What the subject could prove for an event, without signing anything."""
        state = self._state(normalize_address(subject))
        if requirements is None:
            requirements = self._requirements_for(event_id, None)[0] if event_id else EventRequirements()
        return preview(state.age, requirements)

    def _new_qr_token(self, subject: str, event_id: str, now: datetime) -> str:
        while True:
            raw = f"{subject}:{event_id}:{epoch_ms(now)}:{secrets.token_hex(8)}"
            token = "RP-" + sha256(raw.encode("utf-8")).hex()[:24].upper()
            if token not in self._ledger.tickets:
                return token

    async def register(
        self,
        subject: str,
        event_id: str,
        requirements: Optional[EventRequirements] = None,
    ) -> RegistrationReceipt:
        """
        Issue a ticket for (subject, event). Requirements default to the
        catalog entry for `event_id`, then to EventRequirements(). Cancelled
        catalog events refuse registration.
        """
        async with self._lock:
            now = self.ctx.now()
            subject = normalize_address(subject)
            requirements, capacity, event_name = self._requirements_for(event_id, requirements)

            state = self._state(subject)
            self._check_active(state, now)

            try:
                decision = require_eligibility(state.age, self.ctx.country, requirements)
            except AgeRestricted:
                self._log(
                    subject, "EVENT_AGE_BLOCKED", now,
                    eventId=event_id,
                    eventName=event_name,
                    minAge=requirements.min_age,
                )
                self._save_ledger()
                raise

            registrations = self._ledger.registrations.get(event_id, [])
            if any(reg.subject == subject for reg in registrations):
                raise AlreadyRegistered()
            if len(registrations) >= capacity:
                raise EventFull()

            proofs = self.ctx.attestations.generate_eligibility(
                subject, state.age, self.ctx.country, requirements, epoch_ms(now), now, decision=decision
            )
            ticket = self.ctx.tickets.sign(subject, event_id, now)
            qr_token = self._new_qr_token(subject, event_id, now)
            claims = [att.claim for att in proofs.attestations]
            registered_at = to_iso(now)

            self._ledger.registrations.setdefault(event_id, []).append(Registration(
                subject=subject,
                event_id=event_id,
                qr_token=qr_token,
                ticket_hash=to_hex(ticket.ticket_hash),
                disclosures=dict(proofs.disclosures),
                attestation_claims=claims,
                registered_at=registered_at,
            ))
            self._ledger.tickets[qr_token] = ticket
            self._log(
                subject, "EVENT_REGISTERED", now,
                eventId=event_id,
                eventName=event_name,
                qrToken=qr_token,
                ticketHash=to_hex(ticket.ticket_hash),
                attestationsUsed=claims,
            )
            self._save_ledger()

        logger.info(f"Registration: {subject[:10]}... → {event_id} (ticket {to_hex(ticket.ticket_hash)[:18]}...)")
        return RegistrationReceipt(
            qr_token=qr_token,
            subject=subject,
            event_id=event_id,
            disclosures=Disclosures.model_validate(proofs.disclosures),
            crypto_proofs=TicketProofs(
                ticket_hash=to_hex(ticket.ticket_hash),
                ticket_signature=to_hex(ticket.signature),
                issuer=ticket.issuer,
                attestations=[AttestationProof.model_validate(att.proof()) for att in proofs.attestations],
                commitments=self._commitments_view(state),
            ),
            registered_at=registered_at,
        )

    # ── Tickets & check-in ───────────────────────────────────────────────────
    def _envelope(self, qr_token: str, ticket: Ticket, model=TicketEnvelope, **extra):
        event = self.catalog.get(ticket.event_id)
        return model(
            qr_token=qr_token,
            subject=ticket.subject,
            event_id=ticket.event_id,
            event_name=event.name if event else None,
            event_venue=event.venue if event else None,
            event_date=event.date if event else None,
            event_capacity=event.capacity if event else None,
            organizer=event.organizer if event else None,
            min_age=event.requirements.min_age if event else 0,
            registered_count=len(self._ledger.registrations.get(ticket.event_id, [])),
            ticket_hash=to_hex(ticket.ticket_hash),
            signature_verified=self.ctx.tickets.verify(ticket),
            created_at=ticket.created_at,
            used_at=ticket.used_at,
            **extra,
        )

    def lookup_ticket(self, qr_token: str) -> TicketEnvelope:
        """Ticket envelope for a QR token, without consuming it."""
        ticket = self._ledger.tickets.get(qr_token)
        if ticket is None:
            raise InvalidTicket()
        return self._envelope(qr_token, ticket)

    def tickets(self, subject: str) -> List[TicketEnvelope]:
        """Tickets held by `subject`, newest first."""
        subject = normalize_address(subject)
        held = [(token, ticket) for token, ticket in self._ledger.tickets.items() if ticket.subject == subject]
        held.sort(key=lambda item: item[1].timestamp, reverse=True)
        return [self._envelope(token, ticket) for token, ticket in held]

    async def scan(self, qr_token: str) -> ScanReceipt:
        async with self._lock:
            now = self.ctx.now()
            ticket = self._ledger.tickets.get(qr_token)
            if ticket is None:
                raise InvalidTicket()
            if ticket.used_at:
                raise AlreadyUsed(f"Ticket already used at {ticket.used_at}.")
            if not self.ctx.tickets.verify(ticket):
                raise SignatureMismatch()

            used_at = to_iso(now)
            ticket = ticket.mark_used(used_at)
            event = self.catalog.get(ticket.event_id)
            leaf = attendance_leaf(ticket.subject, ticket.event_id)

            self._ledger.tickets[qr_token] = ticket
            for registration in self._ledger.registrations.get(ticket.event_id, []):
                if registration.qr_token == qr_token:
                    registration.checked_in = True
                    registration.attendance = "present"
            root = self._attendance.append_leaf(leaf)

            state = self._subjects.get(ticket.subject)
            if state is not None:
                state.reputation.record(AttendanceEntry(
                    leaf=leaf,
                    event_id=ticket.event_id,
                    attended_at=used_at,
                    event_name=event.name if event else None,
                ))
                self._save_subject(state)
                logger.info(
                    f"Reputation updated: {ticket.subject[:10]}... → "
                    f"score={state.reputation.score}, attendance={state.reputation.attendance}"
                )
            self._log(ticket.subject, "TICKET_SCANNED", now, eventId=ticket.event_id, qrToken=qr_token)
            self._save_ledger()

            logger.info(f"Ticket scanned: {qr_token[:12]}... for {ticket.event_id}")
            return self._envelope(qr_token, ticket, model=ScanReceipt, merkle_root=to_hex(root))

    # ── Events & organizer views ─────────────────────────────────────────────
    def _event(self, event_id: str) -> Event:
        event = self.catalog.get(event_id)
        if event is None:
            raise UnknownEvent()
        return event

    def _roster(self, event_id: str) -> List[RosterEntry]:
        return [
            RosterEntry(
                subject=reg.subject,
                qr_token=reg.qr_token,
                registered_at=reg.registered_at,
                disclosures=Disclosures.model_validate(reg.disclosures),
                attestation_claims=list(reg.attestation_claims),
                checked_in=reg.checked_in,
                attendance=reg.attendance,
            )
            for reg in self._ledger.registrations.get(event_id, [])
        ]

    def _event_summary(self, event: Event, with_roster: bool = False) -> EventSummary:
        registered = len(self._ledger.registrations.get(event.id, []))
        return EventSummary.model_validate({
            **event.to_dict(),
            "registeredCount": registered,
            "spotsLeft": max(0, event.capacity - registered),
            "registrations": self._roster(event.id) if with_roster else None,
        })

    def list_events(self) -> List[EventSummary]:
        """Active catalog events with registration counts and spots left."""
        return [self._event_summary(event) for event in self.catalog.list_active()]

    def organizer_events(self, organizer: str) -> List[EventSummary]:
        """The organizer's events, newest first, each with its registration roster."""
        return [self._event_summary(event, with_roster=True) for event in self.catalog.list_by_organizer(organizer)]

    def roster(self, event_id: str) -> List[RosterEntry]:
        """Who registered for a catalog event, with what they disclosed."""
        return self._roster(self._event(event_id).id)

    async def cancel_event(self, event_id: str, organizer: Optional[str] = None) -> EventSummary:
        async with self._lock:
            event = self._event(event_id)
            if organizer is not None and organizer != event.organizer:
                raise NotOrganizer()
            self.catalog.cancel(event_id)
            return self._event_summary(event)

    async def mark_attendance(self, qr_token: str, status: str) -> AttendanceReceipt:
        """
        Organizer's present/absent toggle for a ticket holder. Unlike scan()
        it leaves the ticket, the attendance log and reputation untouched.
        """
        if status not in ("present", "absent"):
            raise InvalidAttendance()
        async with self._lock:
            now = self.ctx.now()
            ticket = self._ledger.tickets.get(qr_token)
            if ticket is None:
                raise InvalidTicket()
            for registration in self._ledger.registrations.get(ticket.event_id, []):
                if registration.qr_token == qr_token:
                    registration.attendance = status
                    registration.checked_in = status == "present"
            self._log(ticket.subject, "ATTENDANCE_MARKED", now, eventId=ticket.event_id, attendance=status)
            self._save_ledger()

        logger.info(f"Attendance: {ticket.subject[:10]}... marked {status} for {ticket.event_id}")
        return AttendanceReceipt(
            qr_token=qr_token,
            subject=ticket.subject,
            event_id=ticket.event_id,
            attendance=status,
            checked_in=status == "present",
        )

    # ── Reputation ───────────────────────────────────────────────────────────
    async def reputation(self, subject: str) -> ReputationView:
        """
        Stored reputation plus an inclusion proof for the subject's most recent
        attendance leaf against the current attendance root.
        """
        async with self._lock:
            state = self._state(normalize_address(subject))
            rep = state.reputation
            root = self._attendance.root
            if rep.leaves:
                latest = rep.leaves[-1].leaf
                merkle = MerkleView(
                    root=to_hex(root),
                    proof=[to_hex(node) for node in self._attendance.proof_for(latest)],
                    leaf=to_hex(latest),
                )
            else:
                merkle = MerkleView(root=to_hex(root), proof=[])

            return ReputationView(
                subject=state.subject,
                score=rep.score,
                attendance=rep.attendance,
                tier=rep.tier,
                events=[
                    AttendanceView(
                        event_id=entry.event_id,
                        event_name=entry.event_name,
                        attended_at=entry.attended_at,
                        leaf_hash=to_hex(entry.leaf),
                    )
                    for entry in rep.leaves
                ],
                merkle=merkle,
            )

    async def set_reputation_score(self, subject: str, score: int) -> ReputationSummary:
        """Explicit override, clamped to [50 + 5·attendance, 100]."""
        async with self._lock:
            state = self._state(normalize_address(subject))
            rep = state.reputation
            rep.score = max(rep.floor, min(MAX_SCORE, int(score)))
            self._save_subject(state)
            logger.info(f"Reputation override for {state.subject[:10]}...: score={rep.score}")
            return ReputationSummary(score=rep.score, attendance=rep.attendance, tier=rep.tier)

    # ── Third-party gate ─────────────────────────────────────────────────────
    async def third_party_check(self, subject: str, min_age: int = 0, event_type: str = "") -> ThirdPartyResult:
        """Yes/no answer for an outside platform. No claims, no signatures, no PII."""
        async with self._lock:
            now = self.ctx.now()
            subject = normalize_address(subject)
            state = self._subjects.get(subject)

            reason = None
            if state is None:
                reason = "no_credential"
            elif state.revoked:
                reason = "revoked"
            elif state.is_expired(now):
                reason = "expired"
            elif min_age > 0 and state.age < min_age:
                reason = "age_restricted"
                self._log(subject, "AGE_GATE_BLOCKED", now, eventType=event_type, minAge=min_age)
                self._save_ledger()
            else:
                self._log(subject, "THIRD_PARTY_VERIFIED", now, eventType=event_type)
                self._save_ledger()

            logger.info(f"Third-party check for {subject[:10]}... ({event_type or 'n/a'}): {reason or 'verified'}")
            return ThirdPartyResult(
                subject=subject,
                verified=reason is None,
                reason=reason,
                event_type=event_type,
                checked_at=to_iso(now),
            )

