"""
modules/events.py — Event Catalog
===================================
Caller-side store of event records. The lifecycle consults it for capacity
and requirements at registration time and joins its metadata into scan
receipts; an unknown event id is still accepted, with default requirements.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from core.eligibility import EventRequirements

logger = logging.getLogger("racepass.events")

DEFAULT_CAPACITY = 100


@dataclass
class Event:
    id: str
    name: str
    organizer: str = ""
    capacity: int = DEFAULT_CAPACITY
    requirements: EventRequirements = field(default_factory=EventRequirements)
    venue: str = "TBD"
    date: str = ""
    category: str = "general"
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "organizer": self.organizer,
            "capacity": self.capacity,
            "requirements": self.requirements.to_dict(),
            "venue": self.venue,
            "date": self.date,
            "category": self.category,
            "status": self.status,
        }


class EventCatalog:
    def __init__(self):
        self._events: Dict[str, Event] = {}

    def create(
        self,
        name: str,
        organizer: str = "",
        capacity: int = DEFAULT_CAPACITY,
        requirements: Optional[EventRequirements] = None,
        event_id: Optional[str] = None,
        **metadata,
    ) -> Event:
        if not name:
            raise ValueError("Event name is required")
        if capacity < 1:
            raise ValueError("Event capacity must be positive")
        event = Event(
            id=event_id or str(uuid.uuid4()),
            name=name,
            organizer=organizer,
            capacity=capacity,
            requirements=requirements or EventRequirements(),
            **metadata,
        )
        self._events[event.id] = event
        logger.info(f"Event created: \"{name}\" (capacity {capacity}, min age {event.requirements.min_age})")
        return event

    def get(self, event_id: str) -> Optional[Event]:
        return self._events.get(event_id)

    def cancel(self, event_id: str) -> Event:
        event = self._events[event_id]
        event.status = "cancelled"
        logger.info(f"Event cancelled: {event_id}")
        return event

    def list_active(self) -> List[Event]:
        return [event for event in self._events.values() if event.is_active]

    def list_by_organizer(self, organizer: str) -> List[Event]:
        """Every event the organizer created, cancelled ones included, newest first."""
        return [event for event in reversed(list(self._events.values())) if event.organizer == organizer]
