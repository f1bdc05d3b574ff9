"""Celery application instance for the Rio Fish inventory project."""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "riofish.settings")

app = Celery("riofish")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
