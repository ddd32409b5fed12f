"""
tests/conftest.py
Shared fixtures: a pinned clock, the development issuer key, and a lifecycle
wired to an in-memory store and a simulated anchor.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.blockchain import AnchorAdapter, AnchorResult, SimulatedAnchor
from core.context import CoreContext
from core.crypto import DEMO_PRIVATE_KEY, IssuerKeyService
from core.errors import AnchorFailure
from db.store import MemoryStateStore
from modules.events import EventCatalog
from modules.lifecycle import CredentialLifecycle
from modules.schemas import KycApplication

DEMO_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
SUBJECT_A = "0x" + "a" * 40
SUBJECT_B = "0x" + "b" * 40
SUBJECT_C = "0x" + "c" * 40
PINNED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = PINNED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)
        return self.now


class FailingAnchor(AnchorAdapter):
    """Anchor that always reports failure without raising."""

    def __init__(self, name: str = "failing"):
        self.name = name
        self.calls = 0

    async def anchor(self, subject, fingerprint):
        self.calls += 1
        return AnchorResult.failed(self.name, "contract not deployed")

    async def is_anchored(self, subject):
        return False


class RaisingAnchor(AnchorAdapter):
    """Anchor whose writer raises an AnchorFailure."""

    def __init__(self, name: str = "raising"):
        self.name = name

    async def anchor(self, subject, fingerprint):
        raise AnchorFailure(self.name, "rpc timeout")

    async def is_anchored(self, subject):
        return False


class BlockingAnchor(AnchorAdapter):
    """Anchor that parks until released, so tests can cancel mid-flight."""

    def __init__(self, name: str = "blocking"):
        self.name = name
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def anchor(self, subject, fingerprint):
        self.started.set()
        await self.release.wait()
        return AnchorResult(chain=self.name, success=True, transaction_hash="0x" + "00" * 32)

    async def is_anchored(self, subject):
        return self.release.is_set()


def make_application(subject=SUBJECT_A, name="Asha", dob="2000-05-10", id_number="123456789012"):
    return KycApplication(subject=subject, name=name, dob=dob, id_number=id_number)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def issuer():
    service = IssuerKeyService()
    service.initialize(DEMO_PRIVATE_KEY)
    yield service
    service.teardown()


@pytest.fixture
def anchor():
    return SimulatedAnchor()


@pytest.fixture
def context(issuer, clock, anchor):
    return CoreContext(issuer=issuer, clock=clock, anchors=[anchor])


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def catalog():
    return EventCatalog()


@pytest.fixture
def lifecycle(context, store, catalog):
    return CredentialLifecycle(context, store=store, catalog=catalog)
