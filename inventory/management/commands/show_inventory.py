"""Print current stock per storage location and size class."""
from django.core.management.base import BaseCommand

from inventory.services import compute_inventory


class Command(BaseCommand):
    help = "Prints derived stock and capacity usage for every storage location."

    def add_arguments(self, parser):
        parser.add_argument(
            "--batches",
            action="store_true",
            help="Also list the contributing batches of each size class, oldest first.",
        )

    def handle(self, *args, **options):
        rows = compute_inventory()
        if not rows:
            self.stdout.write(self.style.WARNING("No storage locations defined."))
            return

        current = None
        for row in rows:
            if row.storage_location_id != current:
                current = row.storage_location_id
                header = (
                    f"{row.storage_location_name} [{row.storage_status}] "
                    f"{row.current_usage_kg} / {row.capacity_kg} kg ({row.utilization_percent}%)"
                )
                style = self.style.SUCCESS if row.storage_status == "active" else self.style.NOTICE
                self.stdout.write(style(header))
            if row.size_class is None:
                self.stdout.write("  (empty)")
                continue
            self.stdout.write(
                f"  size {row.size_class}: {row.total_pieces} pcs, {row.total_weight_kg} kg "
                f"in {row.batch_count} batch(es)"
            )
            if options["batches"]:
                for batch in row.batches:
                    self.stdout.write(
                        f"    - {batch.batch_number} {batch.created_at:%Y-%m-%d %H:%M} "
                        f"{batch.pieces} pcs / {batch.weight_kg} kg ({batch.farmer_name})"
                    )
