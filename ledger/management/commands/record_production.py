from decimal import InvalidOperation

from django.core.management.base import BaseCommand, CommandError

from core.errors import StockError
from inventory.services import kg_to_grams
from ledger.services import record_production


class Command(BaseCommand):
    help = 'Place sorted fish of one size class into a storage location.'

    def add_arguments(self, parser):
        parser.add_argument('--location', type=int, required=True, help='Storage location id')
        parser.add_argument('--size', type=int, required=True, help='Size class (0-10)')
        parser.add_argument('--pieces', type=int, required=True)
        parser.add_argument('--kg', required=True, help='Total weight in kilograms, e.g. 12.5')
        parser.add_argument('--sorting-batch', type=int, help='Id of the sorting batch the fish came from')

    def handle(self, *args, **options):
        try:
            weight_grams = kg_to_grams(options['kg'])
        except InvalidOperation:
            raise CommandError(f"Invalid weight: {options['kg']!r}")
        try:
            batch_id = record_production(
                options['location'],
                options['size'],
                options['pieces'],
                weight_grams,
                options['sorting_batch'],
            )
        except StockError as exc:
            raise CommandError(exc.text)
        self.stdout.write(self.style.SUCCESS(f"Recorded batch {batch_id}."))
