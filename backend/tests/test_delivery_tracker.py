import pytest

from pawnops.services.tracking_service import (
    STAGE_DELIVERED,
    STAGE_EN_ROUTE_TO_DROPOFF,
    STAGE_EN_ROUTE_TO_PICKUP,
    STAGE_PICKED_UP,
    DeliveryTracker,
    get_tracker,
)


@pytest.fixture
def tracker():
    return DeliveryTracker()


def test_full_lifecycle(tracker):
    tracker.start(7, {"lat": 10.0, "lng": 123.0})
    tracker.update_location(7, 10.01, 123.01)
    assert tracker.mark_picked_up(7, {"lat": 10.3, "lng": 123.9})
    tracker.update_location(7, "10.2", "123.5")
    assert tracker.mark_delivered(7)

    record = tracker.get(7)
    assert record.stage == STAGE_DELIVERED
    assert record.pickup_location == {"lat": 10.0, "lng": 123.0}
    assert record.dropoff_location == {"lat": 10.3, "lng": 123.9}
    assert record.current_location == {"lat": 10.2, "lng": 123.5}
    assert [p.stage for p in record.history] == [
        STAGE_EN_ROUTE_TO_PICKUP,
        STAGE_EN_ROUTE_TO_PICKUP,
        STAGE_PICKED_UP,
        STAGE_EN_ROUTE_TO_DROPOFF,
        STAGE_DELIVERED,
    ]


def test_first_fix_starts_tracking(tracker):
    record = tracker.update_location(3, 1.5, 2.5)

    assert record.stage == STAGE_EN_ROUTE_TO_PICKUP
    assert record.pickup_location == {"lat": 1.5, "lng": 2.5}
    assert len(record.history) == 1


def test_explicit_stage_is_kept(tracker):
    tracker.update_location(3, 1, 1, stage=STAGE_EN_ROUTE_TO_DROPOFF)
    assert tracker.get(3).stage == STAGE_EN_ROUTE_TO_DROPOFF


@pytest.mark.parametrize("lat,lng", [(91, 0), (0, -181), ("north", 0), (None, 1)])
def test_invalid_coordinates_rejected(tracker, lat, lng):
    with pytest.raises(ValueError):
        tracker.update_location(1, lat, lng)
    assert tracker.get(1) is None


def test_marks_on_untracked_assignment_are_noops(tracker):
    assert tracker.mark_picked_up(99) is False
    assert tracker.mark_delivered(99) is False
    assert tracker.get(99) is None


def test_returned_records_are_copies(tracker):
    record = tracker.update_location(5, 1, 1)
    record.history.clear()
    record.stage = "tampered"

    stored = tracker.get(5)
    assert stored.stage == STAGE_EN_ROUTE_TO_PICKUP
    assert len(stored.history) == 1


def test_active_excludes_delivered_and_clear_empties(tracker):
    tracker.update_location(1, 1, 1)
    tracker.update_location(2, 2, 2)
    tracker.mark_delivered(2)

    assert [r.assignment_id for r in tracker.active()] == [1]

    tracker.clear()
    assert tracker.active() == []
    assert tracker.get(1) is None


def test_to_dict_serializes_timestamps(tracker):
    data = tracker.update_location(4, 1, 2).to_dict()

    assert data["assignment_id"] == 4
    assert data["current_location"] == {"lat": 1.0, "lng": 2.0}
    assert data["history"][0]["timestamp"].endswith("Z")


def test_app_owns_one_tracker(app):
    with app.app_context():
        assert get_tracker() is app.extensions["delivery_tracker"]
