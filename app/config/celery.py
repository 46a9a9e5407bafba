"""
Celery configuration for the Django application.

Celery runs the chat sweeper in the background:
- Periodic deletion of expired groups
- Periodic destruction of read self-destructing messages
- Expiry warnings for groups close to their deadline

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps; periodic schedules
come from CELERY_BEAT_SCHEDULE and are stored by django_celery_beat.

Usage:
    # Run a worker and the beat scheduler
    celery -A config worker -l info
    celery -A config beat -l info

    # Trigger a sweep by hand
    from chat.tasks import run_sweeper
    run_sweeper.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Create Celery application instance
app = Celery("config")

# Load configuration from Django settings
# All Celery settings should be prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
