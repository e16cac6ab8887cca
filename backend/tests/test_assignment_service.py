"""
Delivery assignment state machine tests.

Covers:
- Creation: role rules, validation before any write, driver status side effect
- Scope: drivers only see their own assignments
- Transitions: pickup/dropoff guards, terminal finality, generic status path
- Read views: active ordering, branch filter, driver history
"""

import pytest

from pawnops.extensions import db
from pawnops.models import CapitalLedgerEntry, DeliveryAssignment
from pawnops.models.accounts import LOGISTICS_ASSIGNED, LOGISTICS_STANDBY
from pawnops.models.logistics import (
    STATUS_ASSIGNED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_EXPIRED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
)
from pawnops.roles import Principal
from pawnops.services import assignment_service
from pawnops.validation import ConflictError, ForbiddenError, NotFoundError, ValidationError


def capital_payload(driver, source, destination, amount="5000", **extra):
    payload = {
        "assigned_to": driver.id,
        "assignment_type": "CAPITAL_DELIVERY",
        "from_location_type": "BRANCH",
        "from_branch_id": source.id,
        "to_location_type": "BRANCH",
        "to_branch_id": destination.id,
        "amount": amount,
    }
    payload.update(extra)
    return payload


def transfer_payload(driver, source, destination, items=None, **extra):
    payload = {
        "assigned_to": driver.id,
        "assignment_type": "ITEM_TRANSFER",
        "from_location_type": "BRANCH",
        "from_branch_id": source.id,
        "to_location_type": "BRANCH",
        "to_branch_id": destination.id,
        "items": items if items is not None else [],
    }
    payload.update(extra)
    return payload


def _count(model):
    return db.session.query(model).count()


class TestCreateAssignment:

    def test_admin_creates_item_transfer(self, admin, driver, branch_a, branch_b):
        assignment = assignment_service.create_assignment(
            Principal.of(admin), transfer_payload(driver, branch_a, branch_b, items=[{"item_id": 1}])
        )

        assert assignment.status == STATUS_ASSIGNED
        assert assignment.assigned_by_account_id == admin.id
        assert assignment.assigned_by_role == "admin"
        assert assignment.items() == [{"item_id": 1}]
        assert assignment.created_at is not None

    def test_camel_case_keys_accepted(self, admin, driver, branch_a, branch_b):
        assignment = assignment_service.create_assignment(Principal.of(admin), {
            "assignedTo": driver.id,
            "assignmentType": "item_transfer",
            "fromLocationType": "branch",
            "fromBranchId": str(branch_a.id),
            "toLocationType": "BRANCH",
            "toBranchId": branch_b.id,
            "dueDate": "2026-11-01",
        })

        assert assignment.assignment_type == "ITEM_TRANSFER"
        assert assignment.from_branch_id == branch_a.id
        assert assignment.due_date.isoformat() == "2026-11-01"

    def test_auditor_may_create_capital_types(self, auditor, driver, branch_a, branch_b):
        assignment = assignment_service.create_assignment(
            Principal.of(auditor), capital_payload(driver, branch_a, branch_b, assignment_type="BALANCE_DELIVERY")
        )
        assert assignment.assignment_type == "BALANCE_DELIVERY"

    def test_auditor_item_transfer_forbidden(self, auditor, driver, branch_a, branch_b):
        with pytest.raises(ForbiddenError):
            assignment_service.create_assignment(Principal.of(auditor), transfer_payload(driver, branch_a, branch_b))
        assert _count(DeliveryAssignment) == 0

    @pytest.mark.parametrize("creator", ["account_executive", "driver"])
    def test_other_roles_forbidden(self, request, creator, driver, branch_a, branch_b):
        account = request.getfixturevalue(creator)
        with pytest.raises(ForbiddenError):
            assignment_service.create_assignment(Principal.of(account), capital_payload(driver, branch_a, branch_b))
        assert _count(DeliveryAssignment) == 0

    @pytest.mark.parametrize("overrides", [
        {"amount": None},
        {"amount": "0"},
        {"amount": "-10"},
        {"amount": "abc"},
        {"assignment_type": "PARCEL"},
        {"from_location_type": "WAREHOUSE"},
        {"from_branch_id": None},
        {"due_date": "next week"},
        {"items": "{not json"},
        {"items": 12},
    ])
    def test_invalid_input_writes_nothing(self, admin, driver, branch_a, branch_b, overrides):
        payload = capital_payload(driver, branch_a, branch_b)
        payload.update(overrides)

        with pytest.raises(ValidationError):
            assignment_service.create_assignment(Principal.of(admin), payload)

        assert _count(DeliveryAssignment) == 0
        assert _count(CapitalLedgerEntry) == 0

    def test_missing_required_fields_named(self, admin):
        with pytest.raises(ValidationError) as excinfo:
            assignment_service.create_assignment(Principal.of(admin), {"assignment_type": "ITEM_TRANSFER"})
        assert "assigned_to" in str(excinfo.value)
        assert "to_location_type" in str(excinfo.value)

    def test_capital_same_branch_rejected(self, admin, driver, branch_a):
        with pytest.raises(ValidationError):
            assignment_service.create_assignment(Principal.of(admin), capital_payload(driver, branch_a, branch_a))
        assert _count(CapitalLedgerEntry) == 0

    def test_vault_source_needs_no_branch(self, admin, driver, branch_b):
        assignment = assignment_service.create_assignment(Principal.of(admin), {
            "assigned_to": driver.id,
            "assignment_type": "ITEM_TRANSFER",
            "from_location_type": "VAULT",
            "to_location_type": "BRANCH",
            "to_branch_id": branch_b.id,
        })
        assert assignment.from_branch_id is None

    def test_unknown_branch_not_found(self, admin, driver, branch_a):
        payload = transfer_payload(driver, branch_a, branch_a, to_branch_id=999999)
        with pytest.raises(NotFoundError):
            assignment_service.create_assignment(Principal.of(admin), payload)
        assert _count(DeliveryAssignment) == 0

    def test_unknown_or_inactive_driver_not_found(self, admin, make_account, branch_a, branch_b):
        retired = make_account("retired", "logistics", is_active=False)

        with pytest.raises(NotFoundError):
            assignment_service.create_assignment(
                Principal.of(admin), transfer_payload(retired, branch_a, branch_b)
            )
        with pytest.raises(NotFoundError):
            assignment_service.create_assignment(
                Principal.of(admin), dict(transfer_payload(retired, branch_a, branch_b), assigned_to=999999)
            )
        assert _count(DeliveryAssignment) == 0


class TestDriverStatus:

    def test_admin_assignment_uses_plain_column(self, admin, driver, branch_a, branch_b):
        assignment_service.create_assignment(Principal.of(admin), transfer_payload(driver, branch_a, branch_b))

        assert driver.logistics_status == LOGISTICS_ASSIGNED
        assert driver.auditor_logistics_status == LOGISTICS_STANDBY
        assert driver.account_executive_logistics_status == LOGISTICS_STANDBY

    def test_auditor_assignment_uses_auditor_column(self, auditor, driver, branch_a, branch_b):
        assignment_service.create_assignment(Principal.of(auditor), capital_payload(driver, branch_a, branch_b))

        assert driver.auditor_logistics_status == LOGISTICS_ASSIGNED
        assert driver.logistics_status == LOGISTICS_STANDBY

    def test_completion_returns_driver_to_standby(self, admin, driver, branch_a, branch_b):
        assignment = assignment_service.create_assignment(
            Principal.of(admin), transfer_payload(driver, branch_a, branch_b)
        )
        as_driver = Principal.of(driver)

        assignment_service.verify_pickup(as_driver, assignment.id, "pickup.jpg")
        assert driver.logistics_status == LOGISTICS_ASSIGNED

        assignment_service.verify_dropoff(as_driver, assignment.id, "dropoff.jpg")
        assert driver.logistics_status == LOGISTICS_STANDBY

    def test_expired_returns_driver_to_standby(self, admin, driver, branch_a, branch_b):
        assignment = assignment_service.create_assignment(
            Principal.of(admin), transfer_payload(driver, branch_a, branch_b)
        )

        assignment_service.set_status(Principal.of(admin), assignment.id, "expired", "no show")

        assert driver.logistics_status == LOGISTICS_STANDBY


class TestTransitions:

    @pytest.fixture
    def assignment(self, admin, driver, branch_a, branch_b):
        return assignment_service.create_assignment(
            Principal.of(admin), transfer_payload(driver, branch_a, branch_b)
        )

    def test_pickup_then_dropoff(self, assignment, driver):
        as_driver = Principal.of(driver)

        assignment_service.verify_pickup(as_driver, assignment.id, "pickup.jpg")
        db.session.refresh(assignment)
        assert assignment.status == STATUS_IN_PROGRESS
        assert assignment.item_image == "pickup.jpg"
        assert assignment.pickup_verified_at is not None

        result = assignment_service.verify_dropoff(as_driver, assignment.id, "dropoff.jpg")
        db.session.refresh(assignment)
        assert result.assignment_id == assignment.id
        assert assignment.status == STATUS_COMPLETED
        assert assignment.dropoff_image == "dropoff.jpg"
        assert assignment.delivered_at is not None

    def test_second_pickup_replaces_proof(self, assignment, driver):
        as_driver = Principal.of(driver)
        assignment_service.verify_pickup(as_driver, assignment.id, "first.jpg")
        assignment_service.verify_pickup(as_driver, assignment.id, "second.jpg")

        db.session.refresh(assignment)
        assert assignment.status == STATUS_IN_PROGRESS
        assert assignment.item_image == "second.jpg"

    def test_dropoff_before_pickup_conflicts(self, assignment, driver):
        with pytest.raises(ConflictError):
            assignment_service.verify_dropoff(Principal.of(driver), assignment.id, "dropoff.jpg")

        db.session.refresh(assignment)
        assert assignment.status == STATUS_ASSIGNED
        assert assignment.dropoff_image is None

    def test_repeated_dropoff_conflicts(self, assignment, driver):
        as_driver = Principal.of(driver)
        assignment_service.verify_pickup(as_driver, assignment.id, "pickup.jpg")
        assignment_service.verify_dropoff(as_driver, assignment.id, "dropoff.jpg")

        with pytest.raises(ConflictError):
            assignment_service.verify_dropoff(as_driver, assignment.id, "again.jpg")

        db.session.refresh(assignment)
        assert assignment.dropoff_image == "dropoff.jpg"

    def test_pickup_after_terminal_conflicts(self, assignment, admin, driver):
        assignment_service.set_status(Principal.of(admin), assignment.id, STATUS_CANCELLED)

        with pytest.raises(ConflictError):
            assignment_service.verify_pickup(Principal.of(driver), assignment.id, "late.jpg")

    def test_terminal_states_are_final(self, assignment, admin):
        as_admin = Principal.of(admin)
        assignment_service.set_status(as_admin, assignment.id, STATUS_CANCELLED, "customer cancelled")

        with pytest.raises(ConflictError):
            assignment_service.set_status(as_admin, assignment.id, STATUS_ASSIGNED)
        with pytest.raises(ConflictError):
            assignment_service.set_status(as_admin, assignment.id, STATUS_EXPIRED)

        db.session.refresh(assignment)
        assert assignment.status == STATUS_CANCELLED

    def test_set_status_completed_requires_in_progress(self, assignment, admin):
        with pytest.raises(ConflictError):
            assignment_service.set_status(Principal.of(admin), assignment.id, STATUS_COMPLETED)

        db.session.refresh(assignment)
        assert assignment.status == STATUS_ASSIGNED

    def test_set_status_completed_from_in_progress(self, assignment, admin, driver):
        assignment_service.verify_pickup(Principal.of(driver), assignment.id, "pickup.jpg")

        assignment_service.set_status(Principal.of(admin), assignment.id, STATUS_COMPLETED, "closed by office")

        db.session.refresh(assignment)
        assert assignment.status == STATUS_COMPLETED
        assert assignment.delivered_at is not None
        assert assignment.notes.endswith(": closed by office")

    def test_unknown_status_rejected(self, assignment, admin):
        with pytest.raises(ValidationError):
            assignment_service.set_status(Principal.of(admin), assignment.id, "LOST")

    def test_same_status_appends_note_only(self, assignment, admin):
        as_admin = Principal.of(admin)
        assignment_service.set_status(as_admin, assignment.id, STATUS_ASSIGNED, "called driver")
        assignment_service.set_status(as_admin, assignment.id, STATUS_ASSIGNED, "driver on the way")
        assignment_service.set_status(as_admin, assignment.id, STATUS_ASSIGNED, "   ")

        db.session.refresh(assignment)
        lines = assignment.notes.split("\n")
        assert assignment.status == STATUS_ASSIGNED
        assert len(lines) == 2
        assert lines[0].endswith("Z: called driver")
        assert lines[1].endswith("Z: driver on the way")

    def test_initial_note_kept_when_status_changes(self, admin, driver, branch_a, branch_b):
        assignment = assignment_service.create_assignment(
            Principal.of(admin), transfer_payload(driver, branch_a, branch_b, notes="fragile")
        )

        assignment_service.set_status(Principal.of(admin), assignment.id, STATUS_CANCELLED, "stock recount")

        db.session.refresh(assignment)
        assert assignment.is_terminal
        assert assignment.notes.startswith("fragile\n")
        assert assignment.notes.endswith(": stock recount")


class TestScope:

    @pytest.fixture
    def assignment(self, admin, driver, branch_a, branch_b):
        return assignment_service.create_assignment(
            Principal.of(admin), transfer_payload(driver, branch_a, branch_b)
        )

    def test_other_driver_sees_not_found(self, assignment, other_driver):
        as_other = Principal.of(other_driver)

        with pytest.raises(NotFoundError):
            assignment_service.get_assignment(as_other, assignment.id)
        with pytest.raises(NotFoundError):
            assignment_service.verify_pickup(as_other, assignment.id, "x.jpg")
        with pytest.raises(NotFoundError):
            assignment_service.set_status(as_other, assignment.id, STATUS_CANCELLED)

        db.session.refresh(assignment)
        assert assignment.status == STATUS_ASSIGNED

    def test_account_executive_sees_not_found(self, assignment, account_executive):
        with pytest.raises(NotFoundError):
            assignment_service.get_assignment(Principal.of(account_executive), assignment.id)

    def test_auditor_may_read_and_set_status(self, assignment, auditor):
        as_auditor = Principal.of(auditor)
        assert assignment_service.get_assignment(as_auditor, assignment.id).id == assignment.id

        assignment_service.set_status(as_auditor, assignment.id, STATUS_FAILED)
        db.session.refresh(assignment)
        assert assignment.status == STATUS_FAILED

    def test_auditor_cannot_verify_pickup(self, assignment, auditor):
        with pytest.raises(NotFoundError):
            assignment_service.verify_pickup(Principal.of(auditor), assignment.id, "x.jpg")

    def test_list_assignments_restricted(self, assignment, driver, admin):
        with pytest.raises(ForbiddenError):
            assignment_service.list_assignments(Principal.of(driver))
        assert [a.id for a in assignment_service.list_assignments(Principal.of(admin))] == [assignment.id]

    def test_missing_assignment_not_found(self, admin, db_session):
        with pytest.raises(NotFoundError):
            assignment_service.get_assignment(Principal.of(admin), 424242)


class TestReadViews:

    def test_active_orders_assigned_first_then_newest(self, admin, driver, branch_a, branch_b):
        as_admin = Principal.of(admin)
        first = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
        second = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
        third = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
        done = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))

        assignment_service.verify_pickup(Principal.of(driver), third.id, "pickup.jpg")
        assignment_service.set_status(as_admin, done.id, STATUS_CANCELLED)

        active = assignment_service.get_active()

        assert [a.id for a in active] == [second.id, first.id, third.id]

    def test_active_branch_filter_matches_either_end(self, admin, driver, branch_a, branch_b, branch_c):
        as_admin = Principal.of(admin)
        a_to_b = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
        c_to_a = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_c, branch_a))
        b_to_c = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_b, branch_c))

        ids_for_a = {a.id for a in assignment_service.get_active(branch_id=branch_a.id)}

        assert ids_for_a == {a_to_b.id, c_to_a.id}
        assert b_to_c.id not in ids_for_a

    def test_active_for_driver(self, admin, driver, other_driver, branch_a, branch_b):
        as_admin = Principal.of(admin)
        assert assignment_service.get_active_for_driver(driver.id) is None

        mine = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
        assignment_service.create_assignment(as_admin, transfer_payload(other_driver, branch_a, branch_b))

        assert assignment_service.get_active_for_driver(driver.id).id == mine.id

    def test_driver_history_includes_terminal_and_limits(self, admin, driver, branch_a, branch_b):
        as_admin = Principal.of(admin)
        created = [
            assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
            for _ in range(3)
        ]
        assignment_service.set_status(as_admin, created[0].id, STATUS_EXPIRED)

        history = assignment_service.get_driver_history(driver.id)
        assert [a.id for a in history] == [c.id for c in reversed(created)]
        assert len(assignment_service.get_driver_history(driver.id, limit=2)) == 2

    def test_list_assignments_filters(self, admin, driver, branch_a, branch_b, branch_c):
        as_admin = Principal.of(admin)
        a_to_b = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_a, branch_b))
        b_to_c = assignment_service.create_assignment(as_admin, transfer_payload(driver, branch_b, branch_c))
        assignment_service.set_status(as_admin, a_to_b.id, STATUS_CANCELLED)

        cancelled = assignment_service.list_assignments(as_admin, status="cancelled")
        for_c = assignment_service.list_assignments(as_admin, branch_id=branch_c.id)

        assert [a.id for a in cancelled] == [a_to_b.id]
        assert [a.id for a in for_c] == [b_to_c.id]
