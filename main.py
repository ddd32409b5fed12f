"""
main.py — RacePass Entry Point
================================
Brings the core up and down. It does 4 things in order:
    1. Configures logging
    2. Builds the CoreContext (issuer key, clock, anchor registry)
    3. Opens the state store and hydrates the lifecycle
    4. Connects the anchor adapters

Embed it with:
    async with lifespan() as lifecycle:
        receipt = await lifecycle.submit(application)

Or run the demo walk-through:
    python main.py
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from config import Settings, get_settings
from core.context import CoreContext
from core.eligibility import EventRequirements
from db.store import create_state_store
from modules.events import EventCatalog
from modules.lifecycle import CredentialLifecycle
from modules.schemas import KycApplication

logger = logging.getLogger("racepass.main")


# ── Logging setup ─────────────────────────────────────────────────────────────
def configure_logging(settings: Settings):
    handlers = [logging.StreamHandler()]                  # print to terminal
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))   # also save to file
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=handlers,
    )


# ── Lifespan: startup and shutdown ────────────────────────────────────────────
@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None, catalog: Optional[EventCatalog] = None):
    """
    Everything BEFORE yield → runs on startup.
    Everything AFTER yield  → runs on shutdown.
    """
    settings = settings or get_settings()

    # ── STARTUP ──────────────────────────────────────────────────────────
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # 1. Issuer key + anchor registry
    context = CoreContext.from_settings(settings)

    # 2. State store
    logger.info(f"Opening state store ({settings.STATE_BACKEND})...")
    store = create_state_store(settings)
    lifecycle = CredentialLifecycle(context, store=store, catalog=catalog)
    logger.info("✓ State store ready")

    # 3. Anchors
    logger.info(f"Connecting anchor backends ({', '.join(settings.ANCHOR_BACKENDS)})...")
    await context.connect()
    logger.info("✓ Anchors connected")

    logger.info("=" * 50)
    logger.info(f"  {settings.APP_NAME} core is LIVE — issuer {context.issuer.address()}")
    logger.info("=" * 50)

    try:
        yield lifecycle
    finally:
        # ── SHUTDOWN ──────────────────────────────────────────────────────
        logger.info("Shutting down: disconnecting anchors, wiping issuer key...")
        await context.teardown()
        store.close()
        logger.info("✓ Shutdown complete")


# ── Demo run ──────────────────────────────────────────────────────────────────
async def demo():
    catalog = EventCatalog()
    concert = catalog.create(
        "Midnight Beats",
        organizer="Demo Organizer",
        capacity=50,
        requirements=EventRequirements(min_age=18),
        venue="Mumbai Arena",
    )

    async with lifespan(catalog=catalog) as lifecycle:
        subject = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
        receipt = await lifecycle.submit(KycApplication(
            subject=subject, name="Asha", dob="2000-05-10", id_number="123456789012",
        ))
        logger.info(f"Issued {receipt.credential_id} ({receipt.age_category})")

        registration = await lifecycle.register(subject, concert.id)
        logger.info(f"Registered, QR {registration.qr_token}")

        scan = await lifecycle.scan(registration.qr_token)
        logger.info(f"Scanned at {scan.used_at}, root {scan.merkle_root[:18]}...")

        reputation = await lifecycle.reputation(subject)
        logger.info(f"Reputation: {reputation.score} ({reputation.tier}), {reputation.attendance} events")


if __name__ == "__main__":
    configure_logging(get_settings())
    asyncio.run(demo())
