"""
System operations tests — operator status, field edits, work queue.
"""

import pytest

from buildroom.core.exceptions import (
    NoChangeError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from buildroom.models import db
from buildroom.models.audit import ActivityLog
from buildroom.models.system import System
from buildroom.services import order_service, system_service


class TestSetSystemStatus:
    def test_operator_moves_pending_to_in_progress(self, make_order, staff):
        system = make_order().systems[0]
        system_service.set_system_status(system.id, "in_progress", staff)
        assert db.session.get(System, system.id).status == "in_progress"
        entry = ActivityLog.query.filter_by(action="system_status_change").one()
        assert entry.details == {"from": "pending", "to": "in_progress"}

    def test_complete_blocked_by_open_steps(self, make_order, staff):
        system = make_order().systems[0]
        with pytest.raises(PreconditionFailedError) as exc_info:
            system_service.set_system_status(system.id, "complete", staff)
        assert len(exc_info.value.details["open_step_ids"]) == 2

    def test_cannot_reopen_finished_checklist(self, make_order, staff, manager, finish_checklist):
        system = make_order().systems[0]
        finish_checklist(system, staff, manager)
        with pytest.raises(PreconditionFailedError):
            system_service.set_system_status(system.id, "in_progress", staff)

    def test_system_without_checklist_completes_directly(self, make_order, staff):
        order = make_order(systems=[{"type": "monitor"}])
        system = order.systems[0]
        system_service.set_system_status(system.id, "complete", staff)
        assert db.session.get(System, system.id).derived_status == "complete"
        order_service.transition_order(order.id, "complete", staff)

    def test_same_status(self, make_order, staff):
        system = make_order().systems[0]
        with pytest.raises(NoChangeError):
            system_service.set_system_status(system.id, "pending", staff)

    def test_unknown_status(self, make_order, staff):
        system = make_order().systems[0]
        with pytest.raises(ValidationError):
            system_service.set_system_status(system.id, "broken", staff)


class TestUpdateSystem:
    def test_updates_fields_and_logs_diff(self, make_order, staff, other_staff):
        system = make_order().systems[0]
        system_service.update_system(system.id, {
            "serial_number": "SN-42",
            "asset_name": "FIN-LT-042",
            "assigned_to": other_staff.id,
            "agiloft_asset_id": "AG-9",
        }, staff)
        system = db.session.get(System, system.id)
        assert system.serial_number == "SN-42"
        assert system.assigned_to == other_staff.id
        entry = ActivityLog.query.filter_by(action="system_update").one()
        assert entry.details["serial_number"] == {"old": None, "new": "SN-42"}

    def test_unchanged_payload_writes_nothing(self, make_order, staff):
        system = make_order().systems[0]
        system_service.update_system(system.id, {"skip_queue": False}, staff)
        assert ActivityLog.query.filter_by(action="system_update").count() == 0

    def test_unknown_assignee(self, make_order, staff):
        system = make_order().systems[0]
        with pytest.raises(NotFoundError):
            system_service.update_system(system.id, {"assigned_to": 9999}, staff)

    def test_closed_once_order_complete(self, make_order, staff):
        order = make_order(systems=[{"type": "monitor"}])
        system_service.set_system_status(order.systems[0].id, "complete", staff)
        order_service.transition_order(order.id, "complete", staff)
        with pytest.raises(PreconditionFailedError):
            system_service.update_system(order.systems[0].id, {"serial_number": "X"}, staff)


class TestWorkQueue:
    def test_skip_queue_first_then_position(self, make_order, staff):
        first = make_order()
        second = make_order()
        third = make_order()
        system_service.update_system(third.systems[0].id, {"skip_queue": True}, staff)
        queue = [s.id for s in system_service.work_queue()]
        assert queue == [third.systems[0].id, first.systems[0].id, second.systems[0].id]

    def test_complete_systems_leave_queue(self, make_order, staff):
        order = make_order(systems=[{"type": "monitor"}, {"type": "laptop"}])
        monitor = next(s for s in order.systems if s.checklist is None)
        system_service.set_system_status(monitor.id, "complete", staff)
        assert monitor.id not in [s.id for s in system_service.work_queue()]

    def test_limit(self, make_order):
        make_order(systems=[{"type": "laptop", "quantity": 3}])
        assert len(system_service.work_queue(limit=2)) == 2
