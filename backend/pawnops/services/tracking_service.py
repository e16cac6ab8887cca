# Overview: In-process delivery tracker; last-known driver position and stage per assignment.

"""
Delivery Tracker

Transient, process-local tracking state keyed by assignment id. Nothing here
is persisted: a restart forgets every record, and nothing in the ledger or
assignment tables depends on it. One tracker is owned by each Flask app
(app.extensions["delivery_tracker"]); init_app creates it and clear() empties
it.
"""

from __future__ import annotations

import threading
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app, has_app_context

from pawnops.time_utils import to_utc_z, utcnow


STAGE_EN_ROUTE_TO_PICKUP = "en_route_to_pickup"
STAGE_PICKED_UP = "picked_up"
STAGE_EN_ROUTE_TO_DROPOFF = "en_route_to_dropoff"
STAGE_DELIVERED = "delivered"

EXTENSION_KEY = "delivery_tracker"


@dataclass
class TrackingPoint:
    location: dict | None
    timestamp: datetime
    stage: str

    def to_dict(self) -> dict:
        return {"location": self.location, "timestamp": to_utc_z(self.timestamp), "stage": self.stage}


@dataclass
class TrackingRecord:
    assignment_id: int
    stage: str
    current_location: dict | None = None
    pickup_location: dict | None = None
    dropoff_location: dict | None = None
    history: list[TrackingPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "assignment_id": self.assignment_id,
            "stage": self.stage,
            "current_location": self.current_location,
            "pickup_location": self.pickup_location,
            "dropoff_location": self.dropoff_location,
            "history": [point.to_dict() for point in self.history],
        }


def _location(lat, lng) -> dict:
    try:
        lat, lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValueError("lat and lng must be numbers")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise ValueError("lat/lng out of range")
    return {"lat": lat, "lng": lng}


class DeliveryTracker:
    """Thread-safe map of assignment id -> TrackingRecord."""

    def __init__(self):
        self._records: dict[int, TrackingRecord] = {}
        self._lock = threading.Lock()

    def start(self, assignment_id: int, initial_location: dict | None = None) -> TrackingRecord:
        """(Re)start tracking; the first fix doubles as the pickup location."""
        now = utcnow()
        record = TrackingRecord(
            assignment_id=assignment_id,
            stage=STAGE_EN_ROUTE_TO_PICKUP,
            current_location=initial_location,
            pickup_location=initial_location,
            history=[TrackingPoint(initial_location, now, STAGE_EN_ROUTE_TO_PICKUP)],
        )
        with self._lock:
            self._records[assignment_id] = record
        return deepcopy(record)

    def update_location(self, assignment_id: int, lat, lng, stage: str | None = None) -> TrackingRecord:
        """Record a GPS fix, starting tracking on the first one."""
        location = _location(lat, lng)
        with self._lock:
            record = self._records.get(assignment_id)
            if record is None:
                record = TrackingRecord(
                    assignment_id=assignment_id,
                    stage=STAGE_EN_ROUTE_TO_PICKUP,
                    pickup_location=location,
                )
                self._records[assignment_id] = record
            record.current_location = location
            if stage:
                record.stage = stage
            record.history.append(TrackingPoint(location, utcnow(), record.stage))
            return deepcopy(record)

    def mark_picked_up(self, assignment_id: int, dropoff_location: dict | None = None) -> bool:
        with self._lock:
            record = self._records.get(assignment_id)
            if record is None:
                return False
            record.stage = STAGE_EN_ROUTE_TO_DROPOFF
            record.dropoff_location = dropoff_location or record.dropoff_location
            record.history.append(TrackingPoint(record.current_location, utcnow(), STAGE_PICKED_UP))
            return True

    def mark_delivered(self, assignment_id: int) -> bool:
        with self._lock:
            record = self._records.get(assignment_id)
            if record is None:
                return False
            record.stage = STAGE_DELIVERED
            record.history.append(TrackingPoint(record.current_location, utcnow(), STAGE_DELIVERED))
            return True

    def get(self, assignment_id: int) -> TrackingRecord | None:
        with self._lock:
            record = self._records.get(assignment_id)
            return deepcopy(record) if record else None

    def active(self) -> list[TrackingRecord]:
        """Records not yet delivered."""
        with self._lock:
            return [deepcopy(r) for r in self._records.values() if r.stage != STAGE_DELIVERED]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def init_app(app) -> DeliveryTracker:
    tracker = DeliveryTracker()
    app.extensions[EXTENSION_KEY] = tracker
    return tracker


def get_tracker() -> DeliveryTracker | None:
    if not has_app_context():
        return None
    return current_app.extensions.get(EXTENSION_KEY)
