import logging

from celery import shared_task

from core.services import run_data_quality_checks

logger = logging.getLogger(__name__)


@shared_task(name="core.tasks.run_data_quality_checks_task")
def run_data_quality_checks_task():
    """Periodic sweep; returns the number of unresolved alerts."""
    open_alerts = len(list(run_data_quality_checks()))
    if open_alerts:
        logger.warning("Data quality sweep found %s open alert(s)", open_alerts)
    else:
        logger.info("Data quality sweep found no issues")
    return open_alerts
