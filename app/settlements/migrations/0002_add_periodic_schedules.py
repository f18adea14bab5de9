"""
Add celery-beat schedules for the webhook and settlement sweeps.

Schedules:
    - Retry failed webhooks: every 5 minutes
    - Reset stuck webhooks: every 15 minutes
    - Delete old processed webhooks: daily
    - Queue due settlements: every 5 minutes
    - Expire lapsed merchant tiers: hourly
"""

from django.db import migrations

PERIODIC_TASKS = [
    (
        "Retry Failed Webhooks",
        "settlements.tasks.retry_failed_webhooks",
        5,
        "minutes",
        "Requeues failed webhook events under the retry limit and pending "
        "events that never reached a worker.",
    ),
    (
        "Reset Stuck Webhooks",
        "settlements.tasks.cleanup_stuck_webhooks",
        15,
        "minutes",
        "Resets webhook events stuck in processing so they are retried.",
    ),
    (
        "Delete Old Webhooks",
        "settlements.tasks.cleanup_old_webhooks",
        1,
        "days",
        "Deletes processed webhook events older than WEBHOOK_RETENTION_DAYS.",
    ),
    (
        "Retry Due Transfers",
        "settlements.tasks.retry_due_transfers",
        5,
        "minutes",
        "Queues settlements whose next attempt time has passed.",
    ),
    (
        "Expire Lapsed Tiers",
        "marketplace.tasks.expire_lapsed_tiers",
        1,
        "hours",
        "Returns merchants whose paid tier has lapsed to free.",
    ),
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for name, task, every, period, description in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(every=every, period=period)
        PeriodicTask.objects.get_or_create(
            name=name,
            defaults={
                "task": task,
                "interval": schedule,
                "enabled": True,
                "description": description,
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[entry[0] for entry in PERIODIC_TASKS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlements", "0001_initial"),
        ("marketplace", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
