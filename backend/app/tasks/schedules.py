"""Celery Beat schedule configuration.

Tasks:
- Hourly: ledger integrity audit
- Daily: cancel stale pending records
"""

from celery.schedules import crontab


CELERY_BEAT_SCHEDULE = {
    # Verify transfer pairs and record integrity hashes
    "ledger-audit-hourly": {
        "task": "app.tasks.ledger_audit.audit_ledger_task",
        "schedule": crontab(minute=5),
        "options": {"queue": "ledger"},
    },

    # Cancel pending records that never completed (00:30 UTC)
    "expire-pending-daily": {
        "task": "app.tasks.ledger_audit.expire_pending_records_task",
        "schedule": crontab(hour=0, minute=30),
        "options": {"queue": "ledger"},
    },
}


CELERY_TASK_ROUTES = {
    "app.tasks.ledger_audit.*": {"queue": "ledger"},
}
