from celery import Celery
from kombu import Queue

from app.platform.config import settings

COLLECTION_QUEUE = "performance.collection"


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Queue Structure:
    - performance.collection: measurement batches (one task per site)
    - celery: periodic scheduling and stuck-job sweeps

    Sites are measured in parallel up to the worker concurrency; runs inside
    one batch stay sequential so pacing between provider calls is preserved.
    """
    celery_app = Celery(
        "performance_monitor",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    # Task serialization
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        # Result settings
        result_expires=3600,

        task_routes={
            "app.features.performance.workers.tasks.run_comprehensive_collection": {"queue": COLLECTION_QUEUE},
            "app.features.performance.workers.tasks.run_single_collection": {"queue": COLLECTION_QUEUE},
            "app.features.performance.workers.tasks.schedule_all_sites": {"queue": "celery"},
            "app.features.performance.workers.tasks.sweep_stuck_jobs": {"queue": "celery"},
        },

        task_queues=(
            Queue("default"),
            Queue("celery"),  # For periodic tasks
            Queue(COLLECTION_QUEUE),
        ),

        task_default_queue="default",

        worker_concurrency=settings.COLLECTION_WORKER_CONCURRENCY,
        worker_prefetch_multiplier=1,  # Fair distribution

        task_acks_late=True,  # Acknowledge after task completes
        task_reject_on_worker_lost=True,  # Requeue if worker dies

        beat_schedule={
            "schedule-all-sites": {
                "task": "app.features.performance.workers.tasks.schedule_all_sites",
                "schedule": settings.COLLECTION_SCHEDULE_SECONDS,
            },
            "sweep-stuck-jobs": {
                "task": "app.features.performance.workers.tasks.sweep_stuck_jobs",
                "schedule": settings.STUCK_JOB_SWEEP_SECONDS,
            },
        },
    )

    celery_app.autodiscover_tasks(["app.features.performance.workers"])

    return celery_app


# Global Celery app instance
celery_app = create_celery_app()
