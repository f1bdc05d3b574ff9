from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from ledger.models import Batch
from ledger.services import record_production
from storage.models import StorageLocation
from transfers.models import TransferRequest
from transfers.services import create_transfer_batch

from .errors import InsufficientStock, SizeFailure
from .models import DataQualityAlert
from .services import run_data_quality_checks
from .tasks import run_data_quality_checks_task


class StockErrorTests(TestCase):
    def test_as_dict_lists_failures(self):
        error = InsufficientStock(
            'Not enough stock.', failures=[SizeFailure(2, 'insufficient_stock', 'Size 2: short', 7)]
        )
        self.assertEqual(error.code, 'insufficient_stock')
        self.assertEqual(
            error.as_dict(),
            {
                'error': 'insufficient_stock',
                'message': 'Not enough stock.',
                'failures': [
                    {'size_class': 2, 'code': 'insufficient_stock', 'message': 'Size 2: short', 'transfer_id': 7}
                ],
            },
        )


class DataQualityTests(TestCase):
    def setUp(self):
        self.cold = StorageLocation.objects.create(name='Cold A', capacity_kg=Decimal('10'))
        self.other = StorageLocation.objects.create(name='Cold B', capacity_kg=Decimal('100'))

    def open_codes(self):
        return set(DataQualityAlert.objects.filter(resolved_at__isnull=True).values_list('code', flat=True))

    def test_clean_ledger_has_no_alerts(self):
        record_production(self.cold.pk, 1, 10, 5000)
        self.assertEqual(list(run_data_quality_checks()), [])

    def test_over_capacity(self):
        record_production(self.cold.pk, 1, 30, 12000)
        run_data_quality_checks()
        self.assertIn(f'storage-capacity-{self.cold.pk}', self.open_codes())

    def test_inactive_location_holding_stock(self):
        record_production(self.other.pk, 1, 10, 5000)
        self.other.status = StorageLocation.STATUS_INACTIVE
        self.other.save()
        run_data_quality_checks()
        self.assertIn(f'storage-inactive-stock-{self.other.pk}', self.open_codes())

    def test_ledger_drift(self):
        batch_id = record_production(self.cold.pk, 1, 10, 5000)
        Batch.objects.filter(pk=batch_id).update(pieces=9)
        alerts = list(run_data_quality_checks())
        self.assertEqual([a.code for a in alerts], [f'ledger-drift-{batch_id}'])
        self.assertEqual(alerts[0].severity, 'critical')

    def test_stale_pending_transfer(self):
        record_production(self.cold.pk, 1, 10, 5000)
        [transfer_id] = create_transfer_batch(self.cold.pk, self.other.pk, {1: (1, 500)})
        TransferRequest.objects.filter(pk=transfer_id).update(created_at=timezone.now() - timedelta(days=8))
        run_data_quality_checks()
        self.assertIn(f'transfer-stale-{transfer_id}', self.open_codes())

    @override_settings(FISH_INVENTORY={'STALE_TRANSFER_DAYS': 30})
    def test_stale_threshold_is_configurable(self):
        record_production(self.cold.pk, 1, 10, 5000)
        [transfer_id] = create_transfer_batch(self.cold.pk, self.other.pk, {1: (1, 500)})
        TransferRequest.objects.filter(pk=transfer_id).update(created_at=timezone.now() - timedelta(days=8))
        self.assertEqual(list(run_data_quality_checks()), [])

    def test_fixed_issue_auto_resolves(self):
        batch_id = record_production(self.cold.pk, 1, 30, 12000)
        run_data_quality_checks()
        Batch.objects.filter(pk=batch_id).update(weight_grams=6000)
        Batch.objects.get(pk=batch_id).movements.update(weight_grams=6000)
        run_data_quality_checks()
        alert = DataQualityAlert.objects.get(code=f'storage-capacity-{self.cold.pk}')
        self.assertIsNotNone(alert.resolved_at)
        self.assertTrue(alert.auto_resolved)

    def test_command_and_task(self):
        record_production(self.cold.pk, 1, 30, 12000)
        out = StringIO()
        call_command('check_data_quality', stdout=out)
        self.assertIn('Storage: 1', out.getvalue())
        self.assertIn('exceeds its capacity', out.getvalue())

        out = StringIO()
        call_command('check_data_quality', '--category', 'ledger', stdout=out)
        self.assertIn('No data quality issues detected.', out.getvalue())

        self.assertEqual(run_data_quality_checks_task(), 1)
