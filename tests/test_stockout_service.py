from __future__ import annotations

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from db_support import add_item, add_user, make_session_factory
from school_inventory.errors import (
    AlreadyResolved,
    Forbidden,
    InsufficientStock,
    InvalidQuantity,
    ItemArchived,
    NotFound,
    OutOfStock,
    StorageFailure,
)
from school_inventory.models import InventoryAction, InventoryLog, StockoutRequest, StockoutStatus, UserRole
from school_inventory.services import stockout_service
from school_inventory.services.inventory_service import apply_direct_adjustment, get_item, set_archived
from school_inventory.services.stockout_service import (
    DEFAULT_APPROVAL_NOTE,
    approve_request,
    count_pending_requests,
    deny_request,
    list_pending_requests,
    list_request_activity,
    list_requests_for_user,
    submit_request,
)
from school_inventory.services.time_ranges import TimeRange


class StockoutWorkflowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        self.db = self.session_factory()
        self.super_admin = add_user(self.db, email='root@school.test', role=UserRole.SUPER_ADMIN)
        self.admin = add_user(self.db, email='admin@school.test', role=UserRole.ADMIN)
        self.staff = add_user(self.db, email='staff@school.test', role=UserRole.STAFF)
        self.other_staff = add_user(self.db, email='staff2@school.test', role=UserRole.STAFF)

    def tearDown(self) -> None:
        self.db.close()

    def _submit(self, item_id: int, quantity: int, principal=None, notes: str | None = None) -> StockoutRequest:
        request = submit_request(
            self.db,
            principal=principal or self.staff,
            item_id=item_id,
            quantity=quantity,
            notes=notes,
        )
        self.db.commit()
        return request

    def _stock_logs(self, item_id: int) -> list[InventoryLog]:
        return self.db.execute(
            select(InventoryLog)
            .where(InventoryLog.inventory_id == item_id, InventoryLog.action_type == InventoryAction.STOCK_OUT)
            .order_by(InventoryLog.id.asc())
        ).scalars().all()

    def _request_count(self) -> int:
        return len(self.db.execute(select(StockoutRequest)).scalars().all())

    def test_pencils_request_approved_end_to_end(self) -> None:
        item = add_item(self.db, self.admin, name='Pencils', category='Writing Materials', quantity=100, minimum_stock=20)
        request = self._submit(item.id, 30, notes='Grade 3 classroom')

        self.assertEqual(request.status, StockoutStatus.PENDING)
        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 100)
        self.assertEqual(self._stock_logs(item.id), [])

        result = approve_request(self.db, principal=self.admin, request_id=request.id)
        self.db.commit()

        self.assertEqual(result.item.quantity, 70)
        self.assertEqual(result.request.status, StockoutStatus.APPROVED)
        self.assertEqual(result.request.approved_by, self.admin.id)
        entry = result.log_entry
        self.assertEqual((entry.previous_quantity, entry.new_quantity, entry.quantity_change), (100, 70, -30))
        self.assertEqual(entry.notes, DEFAULT_APPROVAL_NOTE)
        self.assertEqual(len(self._stock_logs(item.id)), 1)

    def test_decision_notes_are_recorded(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 2)

        result = approve_request(self.db, principal=self.super_admin, request_id=request.id, decision_notes='  For exams ')
        self.db.commit()

        self.assertEqual(result.request.decision_notes, 'For exams')
        self.assertEqual(result.log_entry.notes, 'For exams')

    def test_submit_checks_stock(self) -> None:
        item = add_item(self.db, self.admin, quantity=5)
        with self.assertRaises(InsufficientStock):
            submit_request(self.db, principal=self.staff, item_id=item.id, quantity=6)
        self.assertEqual(self._request_count(), 0)

        empty = add_item(self.db, self.admin, name='Chalk', category='Classroom Equipment', quantity=0)
        with self.assertRaises(OutOfStock):
            submit_request(self.db, principal=self.staff, item_id=empty.id, quantity=1)

        with self.assertRaises(InvalidQuantity):
            submit_request(self.db, principal=self.staff, item_id=item.id, quantity=0)
        with self.assertRaises(NotFound):
            submit_request(self.db, principal=self.staff, item_id=9999, quantity=1)
        self.assertEqual(self._request_count(), 0)

    def test_submit_rejects_archived_items(self) -> None:
        item = add_item(self.db, self.admin, quantity=5)
        set_archived(self.db, principal=self.admin, item_id=item.id, archived=True)
        self.db.commit()
        with self.assertRaises(ItemArchived):
            submit_request(self.db, principal=self.staff, item_id=item.id, quantity=1)

    def test_submission_does_not_reserve_stock(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        first = self._submit(item.id, 6)
        second = self._submit(item.id, 6, principal=self.other_staff)

        self.assertEqual(count_pending_requests(self.db), 2)
        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 10)

        approve_request(self.db, principal=self.admin, request_id=first.id)
        self.db.commit()
        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 4)

        with self.assertRaises(InvalidQuantity):
            approve_request(self.db, principal=self.admin, request_id=second.id)

        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 4)
        second_row = self.db.get(StockoutRequest, second.id)
        self.assertEqual(second_row.status, StockoutStatus.PENDING)
        self.assertEqual(len(self._stock_logs(item.id)), 1)

        denied = deny_request(self.db, principal=self.admin, request_id=second.id, decision_notes='Not enough left')
        self.db.commit()
        self.assertEqual(denied.status, StockoutStatus.DENIED)

    def test_approval_rechecks_current_quantity(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 8)

        apply_direct_adjustment(self.db, principal=self.admin, item_id=item.id, direction='out', amount=5)
        self.db.commit()

        with self.assertRaises(InvalidQuantity):
            approve_request(self.db, principal=self.admin, request_id=request.id)
        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 5)

    def test_resolution_is_terminal(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        approved = self._submit(item.id, 3)
        denied = self._submit(item.id, 3)

        approve_request(self.db, principal=self.admin, request_id=approved.id)
        deny_request(self.db, principal=self.admin, request_id=denied.id)
        self.db.commit()

        with self.assertRaises(AlreadyResolved):
            approve_request(self.db, principal=self.admin, request_id=approved.id)
        with self.assertRaises(AlreadyResolved):
            deny_request(self.db, principal=self.admin, request_id=approved.id)
        with self.assertRaises(AlreadyResolved):
            approve_request(self.db, principal=self.admin, request_id=denied.id)
        with self.assertRaises(AlreadyResolved):
            deny_request(self.db, principal=self.super_admin, request_id=denied.id)

        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 7)
        self.assertEqual(len(self._stock_logs(item.id)), 1)
        self.assertEqual(self.db.get(StockoutRequest, approved.id).status, StockoutStatus.APPROVED)
        self.assertEqual(self.db.get(StockoutRequest, denied.id).status, StockoutStatus.DENIED)

    def test_deny_has_no_ledger_effect(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 4)

        denied = deny_request(self.db, principal=self.admin, request_id=request.id, decision_notes='Use the spare box')
        self.db.commit()

        self.assertEqual(denied.status, StockoutStatus.DENIED)
        self.assertEqual(denied.approved_by, self.admin.id)
        self.assertEqual(denied.decision_notes, 'Use the spare box')
        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 10)
        self.assertEqual(self._stock_logs(item.id), [])

    def test_role_checks(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 1)

        with self.assertRaises(Forbidden):
            approve_request(self.db, principal=self.staff, request_id=request.id)
        with self.assertRaises(Forbidden):
            deny_request(self.db, principal=self.staff, request_id=request.id)
        with self.assertRaises(NotFound):
            approve_request(self.db, principal=self.admin, request_id=9999)

        # Admins may also raise requests.
        own = self._submit(item.id, 1, principal=self.admin)
        self.assertEqual(own.requested_by, self.admin.id)

    def test_storage_failure_rolls_back_all_writes(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 4)

        failure = OperationalError('INSERT INTO inventory_logs', {}, Exception('disk I/O error'))
        with patch('school_inventory.services.stockout_service.write_log', side_effect=failure):
            with self.assertRaises(StorageFailure):
                approve_request(self.db, principal=self.admin, request_id=request.id)

        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 10)
        self.assertEqual(self.db.get(StockoutRequest, request.id).status, StockoutStatus.PENDING)
        self.assertEqual(self._stock_logs(item.id), [])

        # The request is still approvable once storage recovers.
        result = approve_request(self.db, principal=self.admin, request_id=request.id)
        self.db.commit()
        self.assertEqual(result.item.quantity, 6)

    def test_approval_refused_when_item_archived_after_submission(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 4)

        with self.session_factory() as other:
            set_archived(other, principal=self.admin, item_id=item.id, archived=True)
            other.commit()

        with self.assertRaises(ItemArchived):
            approve_request(self.db, principal=self.admin, request_id=request.id)

        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 10)
        self.assertEqual(self.db.get(StockoutRequest, request.id).status, StockoutStatus.PENDING)
        self.assertEqual(self._stock_logs(item.id), [])

    def test_storage_failure_while_locking_request(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 4)

        failure = OperationalError('SELECT ... FOR UPDATE', {}, Exception('could not obtain lock'))
        with patch('school_inventory.services.stockout_service._lock_request', side_effect=failure):
            with self.assertRaises(StorageFailure):
                approve_request(self.db, principal=self.admin, request_id=request.id)
            with self.assertRaises(StorageFailure):
                deny_request(self.db, principal=self.admin, request_id=request.id)

        self.assertEqual(self.db.get(StockoutRequest, request.id).status, StockoutStatus.PENDING)
        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 10)

    def test_concurrent_resolution_is_reported(self) -> None:
        item = add_item(self.db, self.admin, quantity=10)
        request = self._submit(item.id, 4)

        real_resolve = stockout_service._resolve

        def resolved_elsewhere(db, **kwargs):
            db.execute(
                StockoutRequest.__table__.update()
                .where(StockoutRequest.__table__.c.id == kwargs['request'].id)
                .values(status=StockoutStatus.DENIED)
            )
            return real_resolve(db, **kwargs)

        with patch('school_inventory.services.stockout_service._resolve', side_effect=resolved_elsewhere):
            with self.assertRaises(AlreadyResolved):
                approve_request(self.db, principal=self.admin, request_id=request.id)

        self.assertEqual(get_item(self.db, item_id=item.id).quantity, 10)
        self.assertEqual(self._stock_logs(item.id), [])

    def test_read_queries(self) -> None:
        item = add_item(self.db, self.admin, name='Scissors', category='Art Supplies', quantity=10, unit='pairs')
        pending = self._submit(item.id, 2)
        done = self._submit(item.id, 1, principal=self.other_staff)
        approve_request(self.db, principal=self.admin, request_id=done.id)
        self.db.commit()

        rows = list_pending_requests(self.db)
        self.assertEqual([row['id'] for row in rows], [pending.id])
        self.assertEqual(rows[0]['item_name'], 'Scissors')
        self.assertEqual(rows[0]['unit'], 'pairs')
        self.assertEqual(rows[0]['status'], 'pending')
        self.assertEqual(count_pending_requests(self.db), 1)

        mine = list_requests_for_user(self.db, principal=self.other_staff)
        self.assertEqual([(row['id'], row['status']) for row in mine], [(done.id, 'approved')])

        activity = list_request_activity(self.db, time_range=TimeRange.YEAR)
        self.assertEqual({row['id'] for row in activity}, {pending.id, done.id})

        far_future = datetime(2999, 6, 1, tzinfo=timezone.utc)
        self.assertEqual(list_request_activity(self.db, time_range=TimeRange.DAY, now=far_future), [])


if __name__ == '__main__':
    unittest.main()
