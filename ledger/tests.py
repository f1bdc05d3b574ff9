from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.exceptions import ValidationError
from django.core.management import CommandError, call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from core.errors import (
    InsufficientBatchQuantity,
    InvalidBatchReference,
    InvalidLocation,
    InvalidQuantity,
    InvalidSizeClass,
    LocationNotFound,
)
from storage.models import StorageLocation

from .models import Batch, BatchMovement, SortingBatch
from .services import (
    list_batches,
    record_production,
    record_transfer_credit,
    record_transfer_debit,
)


class RecordProductionTests(TestCase):
    def setUp(self):
        self.location = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('500'))
        self.sorting = SortingBatch.objects.create(batch_number='SB-001', farmer_name='Amina Otieno')

    def test_records_batch_and_movement(self):
        batch_id = record_production(self.location.pk, 3, 100, 50000, self.sorting.pk)
        batch = Batch.objects.get(pk=batch_id)
        self.assertEqual((batch.pieces, batch.weight_grams, batch.size_class), (100, 50000, 3))
        self.assertEqual(batch.sorting_batch, self.sorting)
        self.assertEqual(batch.label, 'SB-001')
        movement = batch.movements.get()
        self.assertEqual(movement.kind, BatchMovement.KIND_PRODUCTION)
        self.assertEqual((movement.pieces, movement.weight_grams), (100, 50000))

    def test_rejects_unknown_or_inactive_location(self):
        with self.assertRaises(LocationNotFound):
            record_production(987654, 3, 10, 1000)
        self.location.status = StorageLocation.STATUS_INACTIVE
        self.location.save()
        with self.assertRaises(InvalidLocation):
            record_production(self.location.pk, 3, 10, 1000)
        self.assertFalse(Batch.objects.exists())

    def test_rejects_non_positive_quantities(self):
        for pieces, grams in ((0, 100), (10, 0), (-1, 100), (10, -5)):
            with self.assertRaises(InvalidQuantity):
                record_production(self.location.pk, 3, pieces, grams)
        self.assertFalse(Batch.objects.exists())

    def test_rejects_size_class_out_of_range(self):
        for size_class in (-1, 11, '3', True):
            with self.assertRaises(InvalidSizeClass):
                record_production(self.location.pk, size_class, 10, 1000)

    @override_settings(FISH_INVENTORY={'MAX_SIZE_CLASS': 12})
    def test_size_class_limit_follows_settings(self):
        batch_id = record_production(self.location.pk, 12, 10, 1000)
        Batch.objects.get(pk=batch_id).full_clean()
        with self.assertRaises(InvalidSizeClass):
            record_production(self.location.pk, 13, 10, 1000)

    def test_model_rejects_size_class_above_limit(self):
        batch = Batch(storage_location=self.location, size_class=11, pieces=1, weight_grams=1)
        with self.assertRaises(ValidationError) as ctx:
            batch.full_clean()
        self.assertIn('size_class', ctx.exception.message_dict)

    def test_rejects_unknown_sorting_batch(self):
        with self.assertRaises(InvalidBatchReference):
            record_production(self.location.pk, 3, 10, 1000, 31337)

    def test_command_records_batch(self):
        out = StringIO()
        call_command('record_production', '--location', str(self.location.pk), '--size', '4',
                     '--pieces', '12', '--kg', '6.25', stdout=out)
        batch = Batch.objects.get()
        self.assertEqual((batch.pieces, batch.weight_grams), (12, 6250))
        self.assertIn(f'Recorded batch {batch.pk}', out.getvalue())

    def test_command_reports_validation_error(self):
        with self.assertRaises(CommandError):
            call_command('record_production', '--location', str(self.location.pk), '--size', '4',
                         '--pieces', '0', '--kg', '1')


class LedgerDebitCreditTests(TestCase):
    def setUp(self):
        self.source = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('500'))
        self.destination = StorageLocation.objects.create(name='Cold B', capacity_kg=Decimal('500'))
        self.batch_id = record_production(self.source.pk, 2, 20, 8000)

    def test_debit_reduces_in_place(self):
        record_transfer_debit(self.batch_id, 5, 2000)
        batch = Batch.objects.get(pk=self.batch_id)
        self.assertEqual((batch.pieces, batch.weight_grams), (15, 6000))
        debit = batch.movements.get(kind=BatchMovement.KIND_TRANSFER_DEBIT)
        self.assertEqual((debit.pieces, debit.weight_grams), (-5, -2000))

    def test_debit_to_zero_keeps_row(self):
        record_transfer_debit(self.batch_id, 20, 8000)
        batch = Batch.objects.get(pk=self.batch_id)
        self.assertTrue(batch.is_depleted)
        self.assertEqual(list_batches(self.source.pk, 2), [])
        self.assertEqual(list_batches(self.source.pk, 2, include_depleted=True), [batch])

    def test_overdraw_raises_and_leaves_batch_untouched(self):
        with self.assertRaises(InsufficientBatchQuantity) as ctx:
            record_transfer_debit(self.batch_id, 21, 100)
        self.assertEqual(ctx.exception.available_pieces, 20)
        with self.assertRaises(InsufficientBatchQuantity):
            record_transfer_debit(self.batch_id, 1, 8001)
        batch = Batch.objects.get(pk=self.batch_id)
        self.assertEqual((batch.pieces, batch.weight_grams), (20, 8000))
        self.assertEqual(batch.movements.count(), 1)

    def test_debit_rejects_empty_or_negative_amounts(self):
        with self.assertRaises(InvalidQuantity):
            record_transfer_debit(self.batch_id, 0, 0)
        with self.assertRaises(InvalidQuantity):
            record_transfer_debit(self.batch_id, -1, 10)

    def test_credit_creates_batch_with_provenance(self):
        batch_id = record_transfer_credit(self.destination.pk, 2, 5, 2000, None, self.source.pk, self.source.name)
        batch = Batch.objects.get(pk=batch_id)
        self.assertEqual(batch.storage_location, self.destination)
        self.assertEqual(batch.transfer_source_location, self.source)
        self.assertEqual(batch.transfer_source_location_name, 'Cold A')
        self.assertEqual(batch.movements.get().kind, BatchMovement.KIND_TRANSFER_CREDIT)

    def test_credit_carries_sorting_batch(self):
        sorting = SortingBatch.objects.create(batch_number='SB-002', farmer_name='Amina Otieno')
        batch_id = record_transfer_credit(
            self.destination.pk, 2, 5, 2000, None, self.source.pk, self.source.name, sorting_batch_id=sorting.pk
        )
        batch = Batch.objects.get(pk=batch_id)
        self.assertEqual(batch.sorting_batch, sorting)
        self.assertEqual(batch.label, 'SB-002')


class ListBatchesTests(TestCase):
    def test_orders_oldest_first_regardless_of_insert_order(self):
        location = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('500'))
        now = timezone.now()
        newest = record_production(location.pk, 5, 3, 900, created_at=now)
        oldest = record_production(location.pk, 5, 1, 300, created_at=now - timedelta(days=2))
        middle = record_production(location.pk, 5, 2, 600, created_at=now - timedelta(days=1))
        record_production(location.pk, 6, 9, 900)

        self.assertEqual([b.pk for b in list_batches(location.pk, 5)], [oldest, middle, newest])

    def test_unknown_location(self):
        with self.assertRaises(LocationNotFound):
            list_batches(4040, 1)
