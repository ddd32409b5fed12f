"""
core/context.py — CoreContext
===============================
The one value that carries process-wide state: configuration, the issuer key,
the clock and the anchor registry. Built once at startup (see main.lifespan)
and passed explicitly to the lifecycle. Nothing in core/ reads settings on its own.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from config import Settings
from core.attestation import AttestationService, country_claim
from core.blockchain import AnchorAdapter, create_anchor_adapters
from core.clock import Clock, utcnow
from core.crypto import IssuerKeyService
from core.ticket import TicketService

logger = logging.getLogger("racepass.context")


@dataclass
class CoreContext:
    issuer: IssuerKeyService
    clock: Clock = utcnow
    anchors: List[AnchorAdapter] = field(default_factory=list)
    mac_secret: str = "default-secret"
    credential_issuer: str = "did:racepass:issuer"
    ttl_days: int = 365
    country: str = "IN"
    rate_limit_window_ms: int = 60_000
    rate_limit_max: int = 5

    def __post_init__(self):
        # countryResident claims need an upper-case ISO-3166 alpha-2 code
        self.country = (self.country or "").strip().upper()
        country_claim(self.country)
        self.attestations = AttestationService(self.issuer)
        self.tickets = TicketService(self.issuer)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Optional[Clock] = None,
        anchors: Optional[List[AnchorAdapter]] = None,
    ) -> "CoreContext":
        """
        Initialize the issuer key and the anchor registry from `settings`.
        The demo key fallback is refused when ENVIRONMENT is "production".
        """
        issuer = IssuerKeyService()
        issuer.initialize(
            settings.ISSUER_PRIVATE_KEY,
            allow_demo=settings.ENVIRONMENT != "production",
        )
        if anchors is None:
            anchors = create_anchor_adapters(settings)
        context = cls(
            issuer=issuer,
            clock=clock or utcnow,
            anchors=list(anchors),
            mac_secret=settings.CREDENTIAL_MAC_SECRET,
            credential_issuer=settings.CREDENTIAL_ISSUER,
            ttl_days=settings.CREDENTIAL_TTL_DAYS,
            country=settings.COUNTRY_CODE,
            rate_limit_window_ms=settings.RATE_LIMIT_WINDOW_MS,
            rate_limit_max=settings.RATE_LIMIT_MAX,
        )
        logger.info(
            f"Core context ready — issuer {issuer.address()}, "
            f"anchors: {[a.name for a in context.anchors] or 'none'}"
        )
        return context

    def now(self):
        return self.clock()

    async def connect(self):
        for adapter in self.anchors:
            await adapter.connect()

    async def teardown(self):
        for adapter in self.anchors:
            await adapter.disconnect()
        self.issuer.teardown()
