"""
db/models.py — Database Table Definitions
==========================================
Each class = one table.
Payloads are the versioned JSON records from modules/state.py. Commitment
secrets inside them are sealed (Fernet) by db/store.py before saving.
No table has a column for a name, date of birth or ID number.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.session import Base


def _utcnow():
    return datetime.now(timezone.utc)


# ── 1. Subject records ────────────────────────────────────────────────────────
class SubjectRecord(Base):
    __tablename__ = "subject_records"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)     # lowercase 0x-hex
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)             # canonical JSON
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ── 2. Ledger (attendance leaves, tickets, registrations, activity) ───────────
class LedgerRecord(Base):
    __tablename__ = "ledger_records"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
