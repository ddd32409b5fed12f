"""
core/ticket.py — Signed entry tickets
=======================================
ticketHash = keccak256(abi.encodePacked(address subject, string eventId, uint256 timestamp, string nonce))
signature  = personal_sign(ticketHash)

Shares the personal-message convention with attestations so one on-chain
recovery path covers both. Single-use is enforced by the lifecycle, not here.
"""

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from core.clock import epoch_ms, epoch_seconds, to_iso
from core.crypto import IssuerKeyService, split_signature
from core.hashing import from_hex, normalize_address, solidity_keccak, to_hex

logger = logging.getLogger("racepass.ticket")


def ticket_hash(subject: str, event_id: str, timestamp: int, nonce: str) -> bytes:
    return solidity_keccak(
        ["address", "string", "uint256", "string"],
        [subject, event_id, timestamp, nonce],
    )


@dataclass(frozen=True)
class Ticket:
    subject: str
    event_id: str
    timestamp: int
    nonce: str
    ticket_hash: bytes
    signature: bytes
    issuer: str
    created_at: str = ""
    used_at: Optional[str] = None

    @property
    def v(self) -> int:
        return split_signature(self.signature)[0]

    @property
    def r(self) -> str:
        return split_signature(self.signature)[1]

    @property
    def s(self) -> str:
        return split_signature(self.signature)[2]

    def mark_used(self, used_at: str) -> "Ticket":
        return replace(self, used_at=used_at)

    def to_dict(self) -> dict:
        return {
            "subject": self.subject,
            "eventId": self.event_id,
            "timestamp": self.timestamp,
            "nonce": self.nonce,
            "ticketHash": to_hex(self.ticket_hash),
            "signature": to_hex(self.signature),
            "v": self.v,
            "r": self.r,
            "s": self.s,
            "issuer": self.issuer,
            "createdAt": self.created_at,
            "usedAt": self.used_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Ticket":
        return cls(
            subject=data["subject"],
            event_id=data["eventId"],
            timestamp=int(data["timestamp"]),
            nonce=data["nonce"],
            ticket_hash=from_hex(data["ticketHash"]),
            signature=from_hex(data["signature"]),
            issuer=data["issuer"],
            created_at=data.get("createdAt", ""),
            used_at=data.get("usedAt"),
        )


class TicketService:
    def __init__(self, issuer: IssuerKeyService):
        self._issuer = issuer

    def sign(self, subject: str, event_id: str, now: datetime, nonce: Optional[str] = None) -> Ticket:
        subject = normalize_address(subject)
        if nonce is None:
            nonce = f"{epoch_ms(now)}-{secrets.token_hex(6)}"
        timestamp = epoch_seconds(now)
        digest = ticket_hash(subject, event_id, timestamp, nonce)
        ticket = Ticket(
            subject=subject,
            event_id=event_id,
            timestamp=timestamp,
            nonce=nonce,
            ticket_hash=digest,
            signature=self._issuer.personal_sign(digest),
            issuer=self._issuer.address(),
            created_at=to_iso(now),
        )
        logger.info(f"Ticket signed for event {event_id} (hash {to_hex(digest)[:18]}...)")
        return ticket

    def verify(self, ticket: Ticket) -> bool:
        try:
            digest = ticket_hash(ticket.subject, ticket.event_id, ticket.timestamp, ticket.nonce)
            if digest != ticket.ticket_hash:
                return False
            recovered = self._issuer.recover_personal(digest, ticket.signature)
        except Exception as exc:  # malformed ticket fields → not verifiable
            logger.debug(f"Ticket recovery failed: {exc.__class__.__name__}")
            return False
        return recovered.lower() == ticket.issuer.lower() and self._issuer.is_issuer(recovered)
