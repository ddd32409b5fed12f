"""
tests/test_ticket.py
Signed entry tickets.
"""
from dataclasses import replace

import pytest

from conftest import DEMO_ADDRESS, PINNED_NOW, SUBJECT_A
from core.clock import epoch_seconds
from core.hashing import solidity_keccak
from core.ticket import Ticket, TicketService, ticket_hash


@pytest.fixture
def service(issuer):
    return TicketService(issuer)


class TestTickets:
    """Tests for ticket signing and verification."""

    def test_hash_definition(self, service):
        """ticketHash = keccak(packed(address, string, uint256, string))."""
        ticket = service.sign(SUBJECT_A, "event-1", PINNED_NOW, nonce="n-1")
        assert ticket.timestamp == epoch_seconds(PINNED_NOW)
        assert ticket.ticket_hash == solidity_keccak(
            ["address", "string", "uint256", "string"],
            [SUBJECT_A, "event-1", ticket.timestamp, "n-1"],
        )
        assert ticket.ticket_hash == ticket_hash(SUBJECT_A, "event-1", ticket.timestamp, "n-1")

    def test_recovers_to_issuer(self, service, issuer):
        """Recovery over ticketHash yields the issuer."""
        ticket = service.sign(SUBJECT_A, "event-1", PINNED_NOW)
        assert ticket.issuer == DEMO_ADDRESS
        assert issuer.recover_personal(ticket.ticket_hash, ticket.signature) == DEMO_ADDRESS
        assert service.verify(ticket)

    def test_default_nonce_is_random(self, service):
        """Two tickets for the same pair and second differ."""
        first = service.sign(SUBJECT_A, "event-1", PINNED_NOW)
        second = service.sign(SUBJECT_A, "event-1", PINNED_NOW)
        assert first.nonce != second.nonce
        assert first.ticket_hash != second.ticket_hash

    def test_tampered_event_fails(self, service):
        """Changing the event id breaks verification."""
        ticket = service.sign(SUBJECT_A, "event-1", PINNED_NOW)
        assert not service.verify(replace(ticket, event_id="event-2"))

    def test_mark_used_keeps_signature(self, service):
        """Marking a ticket used does not affect its signature."""
        ticket = service.sign(SUBJECT_A, "event-1", PINNED_NOW).mark_used("2026-03-01T13:00:00.000Z")
        assert ticket.used_at == "2026-03-01T13:00:00.000Z"
        assert service.verify(ticket)

    def test_dict_round_trip(self, service):
        """to_dict / from_dict keeps the ticket verifiable."""
        ticket = service.sign(SUBJECT_A, "event-1", PINNED_NOW)
        data = ticket.to_dict()
        assert data["v"] in (27, 28)
        restored = Ticket.from_dict(data)
        assert restored == ticket
        assert service.verify(restored)
