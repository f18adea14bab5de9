"""
Celery configuration for the wholesale payments service.

Every piece of downstream webhook work runs here rather than inline with the
HTTP response: webhook processing, order settlement, transfer retries,
notification emails and the periodic sweeps stored by django-celery-beat.

Tasks are auto-discovered from the tasks.py module of each installed app.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
