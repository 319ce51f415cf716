"""
Celery configuration for the insurance API background workers.

Loaded by `celery_app.config_from_object("celeryconfig")` in app/tasks/__init__.py.
All broker/result-backend URLs come from environment variables,
defaulting to localhost for local dev.
"""

import os

from celery.schedules import crontab

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# Run tasks inline (tests, local dev without Redis)
task_always_eager = os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in ("1", "true", "yes")
task_eager_propagates = False
task_store_eager_result = False

imports = ("app.tasks.email_tasks", "app.tasks.premium_tasks")

# ═══════════════════════════════════════════════════════════
#  Serialization: JSON only (no pickle)
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone
# ═══════════════════════════════════════════════════════════

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge tasks AFTER they complete
task_acks_late = True
task_reject_on_worker_lost = True

worker_prefetch_multiplier = 1

# Sweeps touch every open premium; emails are a single SMTP round-trip
task_soft_time_limit = 600    # 10 min: raises SoftTimeLimitExceeded
task_time_limit = 660         # 11 min: hard kill

# ═══════════════════════════════════════════════════════════
#  Retry Policy
# ═══════════════════════════════════════════════════════════

task_default_retry_delay = 60         # 1 minute between retries
task_max_retries = 3

# ═══════════════════════════════════════════════════════════
#  Result Expiry: auto-clean after 24h
# ═══════════════════════════════════════════════════════════

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Worker Settings
# ═══════════════════════════════════════════════════════════

worker_max_tasks_per_child = 200

# Enable with: celery -A app.tasks worker -E
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════
#   celery -A app.tasks worker -Q email       (SMTP delivery)
#   celery -A app.tasks worker -Q default     (premium upkeep)

task_routes = {
    "app.tasks.email_tasks.*": {"queue": "email"},
    "app.tasks.premium_tasks.*": {"queue": "default"},
}

task_default_queue = "default"

# ═══════════════════════════════════════════════════════════
#  Beat Schedule (periodic tasks)
# ═══════════════════════════════════════════════════════════
#   celery -A app.tasks beat

beat_schedule = {
    "mark-overdue-premiums": {
        "task": "app.tasks.premium_tasks.mark_overdue_premiums",
        "schedule": crontab(hour=0, minute=15),
    },
    "send-premium-reminders": {
        "task": "app.tasks.premium_tasks.send_premium_reminders",
        "schedule": crontab(hour=8, minute=0),
    },
}
