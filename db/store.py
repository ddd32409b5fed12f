"""
db/store.py — Pluggable State Store
=====================================
Where the lifecycle persists its records. Two backends:
  1. "memory" — JSON copies in a dict, gone on restart (default)
  2. "sql"    — SQLAlchemy tables subject_records / ledger_records

Both take and return the versioned dicts produced by modules/state.py.
Subject keys are lowercase hex addresses.

With STATE_ENCRYPTION_KEY set, every commitment secret is sealed with Fernet
before it leaves the process and unsealed on load.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import select

from core.errors import NotInitialized
from core.hashing import canonical_json, normalize_address
from db.models import LedgerRecord, SubjectRecord
from db.session import create_db_engine, init_db, make_session_factory

logger = logging.getLogger("racepass.store")

LEDGER_KEY = "main"
SEALED_PREFIX = "fernet:"


class SecretSealer:
    """Seals the `secret` field of every commitment in a subject record."""

    def __init__(self, key: str = ""):
        self._fernet: Optional[Fernet] = Fernet(key.encode()) if key else None

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def seal(self, record: dict) -> dict:
        if self._fernet is None:
            return record
        sealed = dict(record)
        sealed["commitments"] = {
            name: dict(item, secret=SEALED_PREFIX + self._fernet.encrypt(item["secret"].encode()).decode())
            for name, item in record.get("commitments", {}).items()
        }
        return sealed

    def unseal(self, record: dict) -> dict:
        commitments = record.get("commitments", {})
        if not any(item["secret"].startswith(SEALED_PREFIX) for item in commitments.values()):
            return record
        if self._fernet is None:
            raise NotInitialized("Stored commitment secrets are sealed but STATE_ENCRYPTION_KEY is not set.")
        unsealed = dict(record)
        try:
            unsealed["commitments"] = {
                name: dict(item, secret=self._fernet.decrypt(item["secret"][len(SEALED_PREFIX):].encode()).decode())
                if item["secret"].startswith(SEALED_PREFIX) else item
                for name, item in commitments.items()
            }
        except InvalidToken as exc:
            raise NotInitialized("STATE_ENCRYPTION_KEY does not match the stored records.") from exc
        return unsealed


class StateStore(ABC):
    """Abstract base class for state storage backends."""

    def __init__(self, sealer: Optional[SecretSealer] = None):
        self.sealer = sealer or SecretSealer()

    @abstractmethod
    def load_subject(self, address: str) -> Optional[dict]:
        pass

    @abstractmethod
    def save_subject(self, address: str, record: dict) -> None:
        pass

    @abstractmethod
    def list_subjects(self) -> List[str]:
        pass

    @abstractmethod
    def load_ledger(self) -> Optional[dict]:
        pass

    @abstractmethod
    def save_ledger(self, record: dict) -> None:
        pass

    def close(self) -> None:
        pass

    def _encode_subject(self, record: dict) -> str:
        return canonical_json(self.sealer.seal(record)).decode("utf-8")

    def _decode_subject(self, payload: str) -> dict:
        return self.sealer.unseal(json.loads(payload))


# ── In-memory (default, works with zero setup) ──────────────────────────────
class MemoryStateStore(StateStore):
    """Keeps serialized copies so callers never share mutable records with the store."""

    def __init__(self, sealer: Optional[SecretSealer] = None):
        super().__init__(sealer)
        self._subjects: Dict[str, str] = {}
        self._ledger: Optional[str] = None

    def load_subject(self, address: str) -> Optional[dict]:
        payload = self._subjects.get(normalize_address(address))
        return self._decode_subject(payload) if payload is not None else None

    def save_subject(self, address: str, record: dict) -> None:
        self._subjects[normalize_address(address)] = self._encode_subject(record)

    def list_subjects(self) -> List[str]:
        return sorted(self._subjects)

    def load_ledger(self) -> Optional[dict]:
        return json.loads(self._ledger) if self._ledger is not None else None

    def save_ledger(self, record: dict) -> None:
        self._ledger = canonical_json(record).decode("utf-8")


# ── SQL via SQLAlchemy ───────────────────────────────────────────────────────
class SqlStateStore(StateStore):
    def __init__(self, database_url: str, sealer: Optional[SecretSealer] = None, echo: bool = False):
        super().__init__(sealer)
        self.engine = create_db_engine(database_url, echo=echo)
        init_db(self.engine)
        self._session_factory = make_session_factory(self.engine)
        logger.info(f"SQL state store ready ({self.engine.url.get_backend_name()})")

    def load_subject(self, address: str) -> Optional[dict]:
        with self._session_factory() as session:
            row = session.get(SubjectRecord, normalize_address(address))
            return self._decode_subject(row.payload) if row is not None else None

    def save_subject(self, address: str, record: dict) -> None:
        address = normalize_address(address)
        payload = self._encode_subject(record)
        with self._session_factory.begin() as session:
            row = session.get(SubjectRecord, address)
            if row is None:
                session.add(SubjectRecord(address=address, version=record["version"], payload=payload))
            else:
                row.version = record["version"]
                row.payload = payload

    def list_subjects(self) -> List[str]:
        with self._session_factory() as session:
            return list(session.scalars(select(SubjectRecord.address).order_by(SubjectRecord.address)))

    def load_ledger(self) -> Optional[dict]:
        with self._session_factory() as session:
            row = session.get(LedgerRecord, LEDGER_KEY)
            return json.loads(row.payload) if row is not None else None

    def save_ledger(self, record: dict) -> None:
        payload = canonical_json(record).decode("utf-8")
        with self._session_factory.begin() as session:
            row = session.get(LedgerRecord, LEDGER_KEY)
            if row is None:
                session.add(LedgerRecord(name=LEDGER_KEY, payload=payload))
            else:
                row.payload = payload

    def close(self) -> None:
        self.engine.dispose()


# ── Factory: picks the backend from settings ────────────────────────────────
def create_state_store(settings) -> StateStore:
    sealer = SecretSealer(settings.STATE_ENCRYPTION_KEY)
    backend = settings.STATE_BACKEND.lower()
    if backend == "sql":
        logger.info("Using SQL state store")
        return SqlStateStore(settings.STATE_DATABASE_URL, sealer=sealer)
    if backend == "memory":
        logger.info("Using in-memory state store (development mode)")
        return MemoryStateStore(sealer=sealer)
    raise ValueError(f"Unknown state backend: {backend}")
