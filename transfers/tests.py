from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from core.errors import (
    ConcurrentModification,
    DuplicateTransfer,
    InsufficientCapacity,
    InsufficientStock,
    InvalidLocation,
    InvalidQuantity,
    InvalidSizeClass,
    InvalidTransition,
    TransferNotFound,
    TransferNotPending,
)
from inventory.services import available_stock, compute_inventory
from ledger.models import Batch, BatchMovement, SortingBatch
from ledger.services import record_production
from storage.models import StorageLocation
from storage.services import deactivate_location

from . import services
from .models import TransferRequest
from .services import (
    approve_transfer_batch,
    create_transfer_batch,
    decline_transfer_batch,
    pending_transfers,
    plan_fifo_depletion,
    transfer_group,
    transfer_history,
)


class TransferTestCase(TestCase):
    def setUp(self):
        self.cold_a = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('200'))
        self.cold_b = StorageLocation.objects.create(name='Cold B', capacity_kg=Decimal('100'))
        self.user = get_user_model().objects.create_user(username='clerk', password='pass')
        self.manager = get_user_model().objects.create_user(username='manager', password='pass')
        self.t0 = timezone.now() - timedelta(days=3)

    def produce(self, location, size_class, pieces, grams, age_hours=0):
        return record_production(
            location.pk, size_class, pieces, grams, created_at=self.t0 + timedelta(hours=age_hours)
        )


class PlanFifoDepletionTests(TestCase):
    def batch(self, pk, pieces, grams, sorting_batch_id=None):
        return SimpleNamespace(pk=pk, pieces=pieces, weight_grams=grams, sorting_batch_id=sorting_batch_id)

    def test_drains_oldest_first_and_splits_last(self):
        batches = [self.batch(1, 10, 1000, 7), self.batch(2, 7, 700), self.batch(3, 5, 500)]
        draws = plan_fifo_depletion(batches, 13, 1300)
        self.assertEqual([(d.batch_id, d.pieces, d.weight_grams) for d in draws], [(1, 10, 1000), (2, 3, 300)])
        self.assertEqual([d.sorting_batch_id for d in draws], [7, None])

    def test_last_batch_supplies_the_weight_still_owed(self):
        draws = plan_fifo_depletion([self.batch(1, 4, 1002)], 1, 700)
        self.assertEqual(draws[0].weight_grams, 700)

    def test_skips_empty_batches(self):
        draws = plan_fifo_depletion([self.batch(1, 0, 0), self.batch(2, 5, 50)], 5, 50)
        self.assertEqual([d.batch_id for d in draws], [2])

    def test_rejects_weight_the_oldest_pieces_cannot_match(self):
        batches = [self.batch(1, 10, 1000), self.batch(2, 10, 1000)]
        with self.assertRaises(InsufficientStock):
            plan_fifo_depletion(batches, 15, 900)
        with self.assertRaises(InsufficientStock):
            plan_fifo_depletion(batches, 10, 999)

    def test_partial_draw_must_leave_weight_behind(self):
        with self.assertRaises(InsufficientStock):
            plan_fifo_depletion([self.batch(1, 3, 1)], 2, 1)

    def test_weightless_batch_cannot_be_drawn(self):
        with self.assertRaises(InsufficientStock):
            plan_fifo_depletion([self.batch(1, 1, 0), self.batch(2, 5, 500)], 3, 200)

    def test_piece_shortfall_reports_stock(self):
        with self.assertRaises(InsufficientStock) as ctx:
            plan_fifo_depletion([self.batch(1, 3, 300)], 5, 300)
        self.assertEqual(ctx.exception.code, 'insufficient_stock')
        self.assertIn('only 3 pcs', ctx.exception.text)


class CreateTransferTests(TransferTestCase):
    def test_creates_one_request_per_size_with_shared_group(self):
        self.produce(self.cold_a, 1, 50, 10000)
        self.produce(self.cold_a, 3, 100, 50000)
        ids = create_transfer_batch(
            self.cold_a.pk, self.cold_b.pk, {3: (40, 20000), 1: (10, 2000)}, requester=self.user, notes='restock'
        )
        requests = TransferRequest.objects.filter(pk__in=ids).order_by('size_class')
        self.assertEqual([r.size_class for r in requests], [1, 3])
        self.assertEqual(len({r.batch_group_id for r in requests}), 1)
        self.assertEqual(len({r.created_at for r in requests}), 1)
        self.assertTrue(all(r.is_pending and r.notes == 'restock' and r.requested_by == self.user for r in requests))

    def test_insufficient_stock_creates_nothing(self):
        self.produce(self.cold_a, 3, 100, 50000)
        with self.assertRaises(InsufficientStock) as ctx:
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (150, 20000)})
        self.assertEqual([f.size_class for f in ctx.exception.failures], [3])
        self.assertFalse(TransferRequest.objects.exists())

    def test_one_failing_size_aborts_the_group(self):
        self.produce(self.cold_a, 1, 50, 10000)
        self.produce(self.cold_a, 2, 5, 1000)
        with self.assertRaises(InsufficientStock) as ctx:
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (10, 2000), 2: (6, 900)})
        self.assertEqual([f.size_class for f in ctx.exception.failures], [2])
        self.assertEqual(ctx.exception.as_dict()['error'], 'insufficient_stock')
        self.assertFalse(TransferRequest.objects.exists())

    def test_weight_is_checked_as_well_as_pieces(self):
        self.produce(self.cold_a, 2, 10, 1000)
        with self.assertRaises(InsufficientStock):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {2: (5, 1001)})

    def test_rejects_same_location(self):
        self.produce(self.cold_a, 3, 100, 50000)
        with self.assertRaises(InvalidLocation):
            create_transfer_batch(self.cold_a.pk, self.cold_a.pk, {3: (10, 5000)})

    def test_rejects_inactive_destination(self):
        self.produce(self.cold_a, 3, 100, 50000)
        deactivate_location(self.cold_b.pk)
        with self.assertRaises(InvalidLocation):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (10, 5000)})

    def test_rejects_bad_lines(self):
        with self.assertRaises(InvalidQuantity):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {})
        with self.assertRaises(InvalidQuantity):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (0, 100)})
        with self.assertRaises(InvalidSizeClass):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {11: (1, 100)})

    def test_rejects_when_destination_lacks_capacity(self):
        self.produce(self.cold_a, 3, 400, 150000)
        with self.assertRaises(InsufficientCapacity):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (300, 100001)})
        self.assertFalse(TransferRequest.objects.exists())

    def test_rejects_identical_pending_request(self):
        self.produce(self.cold_a, 3, 100, 50000)
        create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (10, 5000)})
        with self.assertRaises(DuplicateTransfer):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (10, 5000)})
        self.assertEqual(TransferRequest.objects.count(), 1)

    def test_rejects_weight_the_oldest_batches_cannot_supply(self):
        self.produce(self.cold_a, 1, 10, 5000)
        self.produce(self.cold_a, 2, 10, 1000, age_hours=0)
        self.produce(self.cold_a, 2, 10, 1000, age_hours=1)
        with self.assertRaises(InsufficientStock) as ctx:
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (2, 1000), 2: (15, 900)})
        [failure] = ctx.exception.failures
        self.assertEqual((failure.size_class, failure.code), (2, 'insufficient_stock'))
        self.assertFalse(TransferRequest.objects.exists())

    def test_rejects_partial_draw_that_would_empty_the_weight(self):
        self.produce(self.cold_a, 4, 3, 1)
        with self.assertRaises(InsufficientStock):
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {4: (2, 1)})
        self.assertFalse(TransferRequest.objects.exists())

    def test_locks_destination_row(self):
        self.produce(self.cold_a, 3, 100, 50000)
        with mock.patch.object(services, 'lock_location', wraps=services.lock_location) as locked:
            create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (10, 5000)})
        locked.assert_called_once_with(self.cold_b.pk)


class ApproveTransferTests(TransferTestCase):
    def test_partial_batch_transfer(self):
        batch_id = self.produce(self.cold_a, 3, 100, 50000)
        before = {r.storage_location_id: r.utilization_percent for r in compute_inventory()}
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (40, 20000)}, requester=self.user)

        result = approve_transfer_batch(transfer_id, approver=self.manager)

        self.assertEqual(result.approved_count, 1)
        self.assertTrue(result.ok)
        source_batch = Batch.objects.get(pk=batch_id)
        self.assertEqual((source_batch.pieces, source_batch.weight_grams), (60, 30000))
        self.assertEqual(source_batch.created_at, self.t0)

        credited = Batch.objects.get(storage_location=self.cold_b)
        self.assertEqual((credited.size_class, credited.pieces, credited.weight_grams), (3, 40, 20000))
        self.assertEqual(credited.transfer_source_location_name, 'Cold A')
        self.assertEqual(credited.transfer_id, transfer_id)
        self.assertEqual(credited.label, f'TRANSFER-{transfer_id}')

        after = {r.storage_location_id: r.utilization_percent for r in compute_inventory()}
        self.assertEqual(before[self.cold_a.pk], Decimal('25.00'))
        self.assertEqual(after[self.cold_a.pk], Decimal('15.00'))
        self.assertEqual(before[self.cold_b.pk], Decimal('0.00'))
        self.assertEqual(after[self.cold_b.pk], Decimal('20.00'))

        request = TransferRequest.objects.get(pk=transfer_id)
        self.assertEqual(request.status, TransferRequest.STATUS_COMPLETED)
        self.assertEqual(request.approved_by, self.manager)
        self.assertIsNotNone(request.approved_at)
        self.assertIsNotNone(request.completed_at)
        self.assertEqual((request.moved_pieces, request.moved_weight_grams), (40, 20000))

    def test_fifo_across_three_batches(self):
        t1 = self.produce(self.cold_a, 5, 10, 3000, age_hours=0)
        t2 = self.produce(self.cold_a, 5, 7, 2100, age_hours=1)
        t3 = self.produce(self.cold_a, 5, 5, 1500, age_hours=2)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {5: (13, 3900)})

        approve_transfer_batch(transfer_id, approver=self.manager)

        remaining = {b.pk: (b.pieces, b.weight_grams) for b in Batch.objects.filter(pk__in=[t1, t2, t3])}
        self.assertEqual(remaining[t1], (0, 0))
        self.assertEqual(remaining[t2], (4, 1200))
        self.assertEqual(remaining[t3], (5, 1500))
        debits = BatchMovement.objects.filter(kind=BatchMovement.KIND_TRANSFER_DEBIT, transfer_id=transfer_id)
        self.assertEqual(sorted(d.batch_id for d in debits), sorted([t1, t2]))

    def test_conservation_between_locations(self):
        self.produce(self.cold_a, 2, 9, 1000, age_hours=0)
        self.produce(self.cold_a, 2, 9, 1234, age_hours=1)
        source_before = available_stock(self.cold_a.pk, 2)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {2: (13, 1500)})

        approve_transfer_batch(transfer_id)

        source_after = available_stock(self.cold_a.pk, 2)
        destination = available_stock(self.cold_b.pk, 2)
        self.assertEqual(source_before.pieces - source_after.pieces, 13)
        self.assertEqual(destination.pieces, 13)
        self.assertEqual(source_before.weight_grams - source_after.weight_grams, destination.weight_grams)
        request = TransferRequest.objects.get(pk=transfer_id)
        self.assertEqual(request.moved_weight_grams, destination.weight_grams)
        self.assertEqual(request.moved_weight_grams, 1500)

    def test_moves_exactly_the_requested_weight(self):
        batch_id = self.produce(self.cold_a, 3, 100, 50000)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (40, 30000)})

        approve_transfer_batch(transfer_id)

        source_batch = Batch.objects.get(pk=batch_id)
        self.assertEqual((source_batch.pieces, source_batch.weight_grams), (60, 20000))
        destination = available_stock(self.cold_b.pk, 3)
        self.assertEqual((destination.pieces, destination.weight_grams), (40, 30000))
        request = TransferRequest.objects.get(pk=transfer_id)
        self.assertEqual((request.moved_pieces, request.moved_weight_grams), (40, 30000))

    def test_credits_one_batch_per_source_batch_with_its_sorting_batch(self):
        sorting = SortingBatch.objects.create(batch_number='SB-7', farmer_name='Amina Otieno')
        record_production(self.cold_a.pk, 2, 10, 3000, sorting.pk, created_at=self.t0)
        self.produce(self.cold_a, 2, 10, 3000, age_hours=1)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {2: (15, 4500)})

        approve_transfer_batch(transfer_id)

        credited = Batch.objects.filter(storage_location=self.cold_b).order_by('id')
        self.assertEqual(
            [(b.label, b.pieces, b.weight_grams) for b in credited],
            [('SB-7', 10, 3000), (f'TRANSFER-{transfer_id}', 5, 1500)],
        )
        self.assertTrue(all(b.transfer_id == transfer_id for b in credited))
        [row] = [r for r in compute_inventory() if r.storage_location_id == self.cold_b.pk]
        self.assertEqual(
            sorted(b.farmer_name for b in row.batches),
            ['Amina Otieno (Transferred from Cold A)', 'Transfer from Cold A'],
        )

    def test_failed_draw_only_fails_its_own_size(self):
        old = self.produce(self.cold_a, 1, 1, 100, age_hours=0)
        newer = self.produce(self.cold_a, 1, 5, 500, age_hours=1)
        self.produce(self.cold_a, 2, 10, 2000)
        ids = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (1, 100), 2: (5, 1000)})
        Batch.objects.filter(pk=old).update(weight_grams=0)

        result = approve_transfer_batch(ids[0])

        [failure] = result.failures
        self.assertEqual((failure.size_class, failure.code, failure.transfer_id), (1, 'insufficient_stock', ids[0]))
        self.assertEqual(result.approved_ids, (ids[1],))
        statuses = dict(TransferRequest.objects.filter(pk__in=ids).values_list('size_class', 'status'))
        self.assertEqual(statuses, {1: 'pending', 2: 'completed'})
        remaining = {b.pk: (b.pieces, b.weight_grams) for b in Batch.objects.filter(pk__in=[old, newer])}
        self.assertEqual(remaining, {old: (1, 0), newer: (5, 500)})
        self.assertFalse(BatchMovement.objects.filter(transfer_id=ids[0]).exists())

    def test_locks_destination_row_before_approving(self):
        self.produce(self.cold_a, 1, 10, 2000)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (5, 1000)})
        with mock.patch.object(services, 'lock_location', wraps=services.lock_location) as locked:
            approve_transfer_batch(transfer_id)
        locked.assert_called_once_with(self.cold_b.pk)

    def test_exact_stock_drains_to_zero(self):
        batch_id = self.produce(self.cold_a, 4, 20, 5000)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {4: (20, 5000)})
        approve_transfer_batch(transfer_id)
        batch = Batch.objects.get(pk=batch_id)
        self.assertTrue(batch.is_depleted)

    def test_any_member_approves_whole_group(self):
        for size_class in (1, 2, 3):
            self.produce(self.cold_a, size_class, 10, 2000)
        ids = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (5, 1000), 2: (5, 1000), 3: (5, 1000)})

        result = approve_transfer_batch(ids[1], approver=self.manager)

        self.assertEqual(result.approved_count, 3)
        self.assertEqual(sorted(result.approved_ids), sorted(ids))
        statuses = set(TransferRequest.objects.filter(pk__in=ids).values_list('status', flat=True))
        self.assertEqual(statuses, {TransferRequest.STATUS_COMPLETED})

    def test_revalidation_leaves_failed_member_pending(self):
        self.produce(self.cold_a, 1, 10, 2000)
        self.produce(self.cold_a, 2, 10, 2000)
        first = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (8, 1600), 2: (5, 1000)})
        competing = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (6, 1200)})

        approve_transfer_batch(competing[0], approver=self.manager)
        result = approve_transfer_batch(first[0], approver=self.manager)

        self.assertEqual(result.approved_count, 1)
        self.assertFalse(result.ok)
        [failure] = result.failures
        self.assertEqual((failure.size_class, failure.code), (1, 'insufficient_stock'))
        self.assertEqual(failure.transfer_id, first[0])
        statuses = dict(TransferRequest.objects.filter(pk__in=first).values_list('size_class', 'status'))
        self.assertEqual(statuses, {1: 'pending', 2: 'completed'})
        self.assertEqual(available_stock(self.cold_a.pk, 1).pieces, 4)

    def test_capacity_is_rechecked_at_approval(self):
        self.produce(self.cold_a, 1, 100, 60000)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (50, 30000)})
        record_production(self.cold_b.pk, 9, 10, 80000)

        result = approve_transfer_batch(transfer_id)

        self.assertEqual(result.approved_count, 0)
        self.assertEqual(result.failures[0].code, 'insufficient_capacity')
        self.assertTrue(TransferRequest.objects.get(pk=transfer_id).is_pending)

    def test_deactivated_location_fails_every_member(self):
        self.produce(self.cold_a, 1, 10, 2000)
        self.produce(self.cold_a, 2, 10, 2000)
        ids = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (1, 200), 2: (1, 200)})
        deactivate_location(self.cold_b.pk)

        result = approve_transfer_batch(ids[0])

        self.assertEqual(result.approved_count, 0)
        self.assertEqual({f.code for f in result.failures}, {'invalid_location'})
        self.assertEqual(TransferRequest.objects.filter(status='pending').count(), 2)

    def test_approving_finished_group_raises(self):
        self.produce(self.cold_a, 1, 10, 2000)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (1, 200)})
        approve_transfer_batch(transfer_id)
        with self.assertRaises(TransferNotPending):
            approve_transfer_batch(transfer_id)

    def test_unknown_transfer(self):
        with self.assertRaises(TransferNotFound):
            approve_transfer_batch(123456)
        with self.assertRaises(TransferNotFound):
            decline_transfer_batch(123456)


class DeclineTransferTests(TransferTestCase):
    def test_declines_whole_group_without_touching_ledger(self):
        for size_class in (1, 2, 3):
            self.produce(self.cold_a, size_class, 10, 2000)
        ids = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (5, 1000), 2: (5, 1000), 3: (5, 1000)})
        movements_before = BatchMovement.objects.count()

        result = decline_transfer_batch(ids[2], approver=self.manager)

        self.assertEqual(result.declined_count, 3)
        for request in TransferRequest.objects.filter(pk__in=ids):
            self.assertEqual(request.status, TransferRequest.STATUS_DECLINED)
            self.assertEqual(request.approved_by, self.manager)
            self.assertIsNotNone(request.approved_at)
        self.assertEqual(BatchMovement.objects.count(), movements_before)
        self.assertEqual(available_stock(self.cold_a.pk, 1).pieces, 10)

    def test_declined_request_cannot_be_approved(self):
        self.produce(self.cold_a, 1, 10, 2000)
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (5, 1000)})
        decline_transfer_batch(transfer_id)
        with self.assertRaises(TransferNotPending):
            approve_transfer_batch(transfer_id)
        request = TransferRequest.objects.get(pk=transfer_id)
        with self.assertRaises(InvalidTransition):
            request.transition_to(TransferRequest.STATUS_APPROVED)


class QueryTests(TransferTestCase):
    def test_pending_history_and_group(self):
        self.produce(self.cold_a, 1, 10, 2000)
        self.produce(self.cold_a, 2, 10, 2000)
        group = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (2, 400), 2: (2, 400)})
        [other] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (3, 600)})
        decline_transfer_batch(other)

        self.assertEqual(sorted(t.pk for t in pending_transfers()), sorted(group))
        self.assertEqual(len(transfer_history()), 3)
        self.assertEqual(len(transfer_history(limit=1)), 1)
        self.assertEqual([t.pk for t in transfer_group(group[1])], group)


class RetryTests(TransferTestCase):
    def setUp(self):
        super().setUp()
        self.produce(self.cold_a, 1, 10, 2000)
        [self.transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {1: (5, 1000)})

    def test_retries_locked_database_then_succeeds(self):
        real = services._lock_pending_group
        calls = []

        def flaky(transfer_id, **kwargs):
            calls.append(transfer_id)
            if len(calls) == 1:
                raise OperationalError('database is locked')
            return real(transfer_id, **kwargs)

        with mock.patch.object(services, '_lock_pending_group', side_effect=flaky):
            result = approve_transfer_batch(self.transfer_id)
        self.assertEqual(len(calls), 2)
        self.assertEqual(result.approved_count, 1)

    @override_settings(FISH_INVENTORY={'TRANSFER_MAX_RETRIES': 2})
    def test_gives_up_after_retry_budget(self):
        with mock.patch.object(
            services, '_lock_pending_group', side_effect=OperationalError('database is locked')
        ) as locked:
            with self.assertRaises(ConcurrentModification):
                decline_transfer_batch(self.transfer_id)
        self.assertEqual(locked.call_count, 2)
        self.assertTrue(TransferRequest.objects.get(pk=self.transfer_id).is_pending)

    def test_deadlock_sqlstate_is_retryable(self):
        class DeadlockDetected(Exception):
            sqlstate = '40P01'

        exc = OperationalError('deadlock detected')
        exc.__cause__ = DeadlockDetected()
        self.assertTrue(services._is_retryable(exc))
        self.assertFalse(services._is_retryable(OperationalError('disk I/O error')))

    def test_other_operational_errors_propagate(self):
        with mock.patch.object(services, '_lock_pending_group', side_effect=OperationalError('no such table')) as locked:
            with self.assertRaises(OperationalError):
                approve_transfer_batch(self.transfer_id)
        self.assertEqual(locked.call_count, 1)


class TransferViewTests(TransferTestCase):
    def setUp(self):
        super().setUp()
        self.produce(self.cold_a, 3, 100, 50000)
        self.user.user_permissions.set(
            Permission.objects.filter(codename__in=['add_transferrequest', 'view_transferrequest'])
        )
        self.manager.user_permissions.set(
            Permission.objects.filter(codename__in=['approve_transferrequest', 'view_transferrequest'])
        )

    def post_create(self, lines, **extra):
        data = {
            'source_location': self.cold_a.pk,
            'destination_location': self.cold_b.pk,
            'notes': 'weekly move',
            'form-TOTAL_FORMS': str(len(lines)),
            'form-INITIAL_FORMS': '0',
            'form-MIN_NUM_FORMS': '0',
            'form-MAX_NUM_FORMS': '1000',
        }
        for index, (size_class, pieces, kg) in enumerate(lines):
            data[f'form-{index}-size_class'] = str(size_class)
            data[f'form-{index}-pieces'] = str(pieces)
            data[f'form-{index}-weight_kg'] = kg
        data.update(extra)
        return self.client.post(reverse('transfers:create'), data)

    def test_create_then_approve(self):
        self.client.force_login(self.user)
        response = self.post_create([(3, 40, '20')])
        self.assertEqual(response.status_code, 201)
        [transfer_id] = response.json()['transfer_ids']
        self.assertEqual(TransferRequest.objects.get(pk=transfer_id).requested_weight_grams, 20000)

        response = self.client.post(reverse('transfers:approve', args=[transfer_id]))
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.manager)
        response = self.client.post(reverse('transfers:approve', args=[transfer_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['approved_count'], 1)

        response = self.client.post(reverse('transfers:approve', args=[transfer_id]))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'transfer_not_pending')

    def test_create_reports_failed_sizes(self):
        self.client.force_login(self.user)
        response = self.post_create([(3, 150, '20')])
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body['error'], 'insufficient_stock')
        self.assertEqual(body['failures'][0]['size_class'], 3)

    def test_create_rejects_duplicate_sizes_in_form(self):
        self.client.force_login(self.user)
        response = self.post_create([(3, 10, '5'), (3, 10, '5')])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'invalid_form')
        self.assertFalse(TransferRequest.objects.exists())

    def test_decline_and_listing(self):
        [transfer_id] = create_transfer_batch(self.cold_a.pk, self.cold_b.pk, {3: (10, 5000)}, requester=self.user)
        self.client.force_login(self.user)
        response = self.client.get(reverse('transfers:pending'))
        self.assertEqual([t['id'] for t in response.json()['transfers']], [transfer_id])

        self.client.force_login(self.manager)
        response = self.client.post(reverse('transfers:decline', args=[transfer_id]))
        self.assertEqual(response.json()['declined_count'], 1)

        response = self.client.get(reverse('transfers:history'))
        self.assertEqual(response.json()['transfers'][0]['status'], 'declined')
        response = self.client.get(reverse('transfers:group', args=[transfer_id]))
        self.assertEqual(response.json()['transfers'][0]['approved_by'], 'manager')
