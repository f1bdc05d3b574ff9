from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from ledger.models import Batch, SortingBatch
from ledger.services import record_production, record_transfer_credit, record_transfer_debit
from storage.models import StorageLocation

from .services import (
    ContributingBatch,
    available_locations_for_transfer,
    available_stock,
    compute_inventory,
    grams_to_kg,
    kg_to_grams,
    location_usage,
    oldest_batches,
    storage_capacity_status,
    utilization_percent,
)


class ConversionTests(TestCase):
    def test_grams_and_kg(self):
        self.assertEqual(grams_to_kg(12345), Decimal('12.345'))
        self.assertEqual(kg_to_grams('12.3456'), 12346)
        self.assertEqual(kg_to_grams(Decimal('0.5')), 500)

    def test_utilization_rounds_half_up(self):
        self.assertEqual(utilization_percent(1, Decimal('0.2')), Decimal('0.50'))
        self.assertEqual(utilization_percent(33335, Decimal('200')), Decimal('16.67'))
        self.assertEqual(utilization_percent(50000, Decimal('200')), Decimal('25.00'))

    def test_zero_capacity_yields_zero(self):
        self.assertEqual(utilization_percent(5000, Decimal('0')), Decimal('0.00'))
        self.assertEqual(utilization_percent(5000, None), Decimal('0.00'))


class ComputeInventoryTests(TestCase):
    def setUp(self):
        self.cold = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('200'))
        self.empty = StorageLocation.objects.create(name='Empty Room', capacity_kg=Decimal('0'))
        self.sorting = SortingBatch.objects.create(
            batch_number='SB-100', farmer_name='Juma Mwangi', processing_date=timezone.now().date()
        )
        now = timezone.now()
        self.newer = record_production(self.cold.pk, 3, 40, 20000, created_at=now)
        self.older = record_production(self.cold.pk, 3, 60, 30000, self.sorting.pk, created_at=now - timedelta(hours=5))
        self.small = record_production(self.cold.pk, 1, 200, 10000, created_at=now - timedelta(hours=1))

    def test_groups_by_location_and_size(self):
        rows = compute_inventory()
        self.assertEqual([(r.storage_location_name, r.size_class) for r in rows],
                         [('Cold A', 1), ('Cold A', 3), ('Empty Room', None)])
        size3 = rows[1]
        self.assertEqual(size3.total_pieces, 100)
        self.assertEqual(size3.total_weight_grams, 50000)
        self.assertEqual(size3.total_weight_kg, Decimal('50'))
        self.assertEqual(size3.batch_count, 2)
        self.assertEqual([b.batch_id for b in size3.batches], [self.older, self.newer])

    def test_location_totals_span_all_sizes(self):
        row = compute_inventory()[0]
        self.assertEqual(row.current_usage_kg, Decimal('60'))
        self.assertEqual(row.available_capacity_kg, Decimal('140'))
        self.assertEqual(row.utilization_percent, Decimal('30.00'))

    def test_empty_location_row(self):
        row = compute_inventory()[-1]
        self.assertIsNone(row.size_class)
        self.assertEqual((row.total_pieces, row.total_weight_grams, row.batch_count), (0, 0, 0))
        self.assertEqual(row.utilization_percent, Decimal('0.00'))
        self.assertEqual(row.as_dict()['contributing_batches'], [])

    def test_depleted_batches_are_hidden(self):
        record_transfer_debit(self.small, 200, 10000)
        rows = compute_inventory()
        self.assertEqual([r.size_class for r in rows if r.storage_location_id == self.cold.pk], [3])

    def test_batch_display_names(self):
        record_transfer_credit(self.empty.pk, 2, 5, 1500, None, self.cold.pk, self.cold.name)
        rows = {(r.storage_location_id, r.size_class): r for r in compute_inventory()}
        farmers = [b.farmer_name for b in rows[(self.cold.pk, 3)].batches]
        self.assertEqual(farmers, ['Juma Mwangi', 'Unknown'])
        self.assertEqual(rows[(self.cold.pk, 3)].batches[0].batch_number, 'SB-100')
        self.assertEqual(rows[(self.cold.pk, 3)].batches[1].batch_number, f'BATCH-{self.newer}')

    def test_transferred_batch_keeps_farmer(self):
        batch = Batch(
            pk=99,
            sorting_batch=self.sorting,
            storage_location=self.empty,
            size_class=3,
            pieces=5,
            weight_grams=2500,
            transfer_id=7,
            transfer_source_location_name='Cold A',
        )
        contributing = ContributingBatch.from_batch(batch)
        self.assertEqual(contributing.farmer_name, 'Juma Mwangi (Transferred from Cold A)')
        self.assertEqual(contributing.batch_number, 'SB-100')
        self.assertTrue(contributing.is_transfer)

    def test_repeated_calls_are_identical(self):
        self.assertEqual(compute_inventory(), compute_inventory())

    def test_as_dict_keys(self):
        data = compute_inventory()[1].as_dict()
        self.assertEqual(data['size'], 3)
        self.assertEqual(data['total_quantity'], 100)
        self.assertEqual(data['storage_location_name'], 'Cold A')
        self.assertEqual(len(data['contributing_batches']), 2)


class StockAndCapacityTests(TestCase):
    def setUp(self):
        self.cold = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('100'))
        self.cold_b = StorageLocation.objects.create(name='Cold B', capacity_kg=Decimal('10'))
        self.closed = StorageLocation.objects.create(
            name='Closed', capacity_kg=Decimal('10'), status=StorageLocation.STATUS_INACTIVE
        )
        record_production(self.cold.pk, 4, 10, 4000)
        record_production(self.cold.pk, 4, 5, 2500)

    def test_available_stock(self):
        stock = available_stock(self.cold.pk, 4)
        self.assertEqual((stock.pieces, stock.weight_grams), (15, 6500))
        self.assertTrue(stock.covers(15, 6500))
        self.assertFalse(stock.covers(16, 100))
        self.assertFalse(stock.covers(1, 6501))
        self.assertEqual(available_stock(self.cold.pk, 7).pieces, 0)

    def test_location_usage(self):
        usage = location_usage(self.cold.pk)
        self.assertEqual(usage.usage_grams, 6500)
        self.assertEqual(usage.available_grams, 93500)
        self.assertEqual(usage.utilization_percent, Decimal('6.50'))

    def test_capacity_status_and_destinations(self):
        names = [u.name for u in storage_capacity_status()]
        self.assertEqual(names, ['Closed', 'Cold A', 'Cold B'])
        destinations = available_locations_for_transfer(exclude_location_id=self.cold.pk)
        self.assertEqual([u.name for u in destinations], ['Cold B'])

    def test_oldest_batches(self):
        aged = oldest_batches(limit=1)
        self.assertEqual(len(aged), 1)
        self.assertEqual(aged[0].batch.pieces, 10)
        self.assertEqual(aged[0].storage_location_name, 'Cold A')
        self.assertEqual(aged[0].days_in_storage, 0)


class InventoryViewTests(TestCase):
    def setUp(self):
        self.cold = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('100'))
        record_production(self.cold.pk, 2, 10, 5000)
        self.user = get_user_model().objects.create_user(username='viewer', password='pass')
        self.user.user_permissions.set(
            Permission.objects.filter(codename__in=['view_batch', 'view_storagelocation'])
        )
        self.client.force_login(self.user)

    def test_inventory_view(self):
        response = self.client.get(reverse('inventory:inventory'))
        self.assertEqual(response.status_code, 200)
        row = response.json()['rows'][0]
        self.assertEqual(row['size'], 2)
        self.assertEqual(row['total_quantity'], 10)
        self.assertEqual(row['utilization_percent'], '5.00')

    def test_capacity_views(self):
        response = self.client.get(reverse('inventory:capacity'))
        self.assertEqual(len(response.json()['locations']), 1)
        response = self.client.get(reverse('inventory:location_capacity', args=[999]))
        self.assertEqual(response.status_code, 404)

    def test_available_stock_view(self):
        response = self.client.get(reverse('inventory:available_stock', args=[self.cold.pk, 2]))
        self.assertEqual(response.json()['total_weight_grams'], 5000)
        response = self.client.get(reverse('inventory:available_stock', args=[self.cold.pk, 12]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'invalid_size_class')

    def test_destinations_need_transfer_permission(self):
        response = self.client.get(reverse('inventory:transfer_destinations'))
        self.assertEqual(response.status_code, 403)


class ShowInventoryCommandTests(TestCase):
    def test_prints_locations_and_sizes(self):
        cold = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('100'))
        StorageLocation.objects.create(name='Spare', capacity_kg=Decimal('20'))
        record_production(cold.pk, 2, 10, 5000)
        out = StringIO()
        call_command('show_inventory', '--batches', stdout=out)
        output = out.getvalue()
        self.assertIn('Cold A', output)
        self.assertIn('size 2: 10 pcs, 5 kg', output)
        self.assertIn('(empty)', output)
