from collections import Counter

from django.core.management.base import BaseCommand

from core.services import run_data_quality_checks


class Command(BaseCommand):
    help = "Check capacity, ledger drift and stale transfers; print unresolved alerts."

    def add_arguments(self, parser):
        parser.add_argument(
            "--category",
            help="Only print alerts in this category (Storage, Ledger, Transfers).",
        )

    def handle(self, *args, **options):
        alerts = list(run_data_quality_checks())
        if options["category"]:
            alerts = [a for a in alerts if a.category.lower() == options["category"].lower()]
        if not alerts:
            self.stdout.write(self.style.SUCCESS("No data quality issues detected."))
            return

        by_category = Counter(alert.category for alert in alerts)
        summary = ", ".join(f"{name}: {count}" for name, count in sorted(by_category.items()))
        self.stdout.write(self.style.WARNING(f"Detected {len(alerts)} data quality issue(s) ({summary}):"))
        for alert in alerts:
            self.stdout.write(
                f"- [{alert.severity.upper()}] {alert.category}: {alert.message}"
            )
