"""
Assignment & priority tests — role rules, bulk all-or-nothing, clamping.
"""

import pytest

from buildroom.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from buildroom.models import db
from buildroom.models.audit import ActivityLog
from buildroom.models.order import Order
from buildroom.services import order_service


class TestAssignOrder:
    def test_manager_assigns(self, make_order, manager, staff):
        order = make_order()
        order_service.assign_order(order.id, staff.id, manager)
        order = db.session.get(Order, order.id)
        assert order.assigned_to == staff.id
        assert order.status == "ordered"
        entry = ActivityLog.query.filter_by(action="assign").one()
        assert entry.details == {"from": None, "to": staff.id}
        assert entry.user_id == manager.id

    def test_none_clears_assignment(self, make_order, manager, staff):
        order = make_order()
        order_service.assign_order(order.id, staff.id, manager)
        order_service.assign_order(order.id, None, manager)
        assert db.session.get(Order, order.id).assigned_to is None

    def test_staff_forbidden(self, make_order, staff, other_staff):
        order = make_order()
        with pytest.raises(ForbiddenError):
            order_service.assign_order(order.id, other_staff.id, staff)
        assert db.session.get(Order, order.id).assigned_to is None

    def test_unknown_user(self, make_order, manager):
        order = make_order()
        with pytest.raises(NotFoundError):
            order_service.assign_order(order.id, 9999, manager)

    def test_inactive_user(self, make_order, manager, other_staff):
        other_staff.is_active = False
        db.session.commit()
        order = make_order()
        with pytest.raises(NotFoundError):
            order_service.assign_order(order.id, other_staff.id, manager)

    def test_complete_order_is_frozen(self, make_order, manager, staff):
        order = make_order(systems=[])
        order_service.transition_order(order.id, "complete", staff)
        with pytest.raises(PreconditionFailedError):
            order_service.assign_order(order.id, staff.id, manager)


class TestBulkAssign:
    def test_assigns_all(self, make_order, manager, staff):
        ids = [make_order().id for _ in range(3)]
        result = order_service.bulk_assign(ids, staff.id, manager)
        assert [o.id for o in result] == ids
        assert all(db.session.get(Order, i).assigned_to == staff.id for i in ids)
        assert ActivityLog.query.filter_by(action="assign").count() == 3

    def test_duplicate_ids_collapse(self, make_order, manager, staff):
        order = make_order()
        result = order_service.bulk_assign([order.id, order.id], staff.id, manager)
        assert len(result) == 1
        assert ActivityLog.query.filter_by(action="assign").count() == 1

    def test_missing_id_aborts_batch(self, make_order, manager, staff):
        ids = [make_order().id, make_order().id]
        with pytest.raises(NotFoundError) as exc_info:
            order_service.bulk_assign(ids + [9999], staff.id, manager)
        assert exc_info.value.details["resource_id"] == 9999
        assert all(db.session.get(Order, i).assigned_to is None for i in ids)
        assert ActivityLog.query.filter_by(action="assign").count() == 0

    def test_terminal_order_aborts_batch(self, make_order, manager, staff):
        open_order = make_order()
        done = make_order(systems=[])
        order_service.transition_order(done.id, "complete", staff)
        with pytest.raises(PreconditionFailedError) as exc_info:
            order_service.bulk_assign([open_order.id, done.id], staff.id, manager)
        assert exc_info.value.details["order_id"] == done.id
        assert db.session.get(Order, open_order.id).assigned_to is None

    def test_staff_forbidden(self, make_order, staff):
        with pytest.raises(ForbiddenError):
            order_service.bulk_assign([make_order().id], staff.id, staff)

    def test_empty_list(self, manager, staff):
        with pytest.raises(ValidationError):
            order_service.bulk_assign([], staff.id, manager)


class TestSetPriority:
    def test_manager_sets_priority(self, make_order, manager):
        order = make_order()
        order_service.set_priority(order.id, 4, manager)
        assert db.session.get(Order, order.id).priority == 4
        entry = ActivityLog.query.filter_by(action="priority_change").one()
        assert entry.details == {"from": 0, "to": 4}

    def test_out_of_range_is_clamped(self, make_order, admin):
        order = make_order()
        order_service.set_priority(order.id, 9, admin)
        assert db.session.get(Order, order.id).priority == 5
        order_service.set_priority(order.id, -3, admin)
        assert db.session.get(Order, order.id).priority == 0

    def test_non_integer(self, make_order, manager):
        order = make_order()
        with pytest.raises(ValidationError):
            order_service.set_priority(order.id, "high", manager)

    def test_staff_forbidden(self, make_order, staff):
        order = make_order()
        with pytest.raises(ForbiddenError):
            order_service.set_priority(order.id, 3, staff)

    def test_complete_order_is_frozen(self, make_order, manager, staff):
        order = make_order(systems=[])
        order_service.transition_order(order.id, "complete", staff)
        with pytest.raises(PreconditionFailedError):
            order_service.set_priority(order.id, 3, manager)
