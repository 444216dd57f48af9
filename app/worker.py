"""
Celery worker entry point for the confirmation sweep

    python -m app.worker            # worker with embedded beat
    celery -A app.worker beat       # separate beat process when scaling out
"""
import logging

from celery.signals import beat_init, task_failure, worker_ready, worker_shutdown

from app.config.celery_config import celery_app
from app.config.settings import get_settings
from app.utils.my_logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()


@worker_ready.connect
def on_worker_ready(sender=None, **kwargs):
    tasks = sorted(name for name in celery_app.tasks if name.startswith("app."))
    logger.info(f"🚀 Confirmation worker ready, tasks: {tasks}")


@beat_init.connect
def on_beat_init(sender=None, **kwargs):
    logger.info(
        f"⏱️ Sweeping expired confirmations every {settings.CONFIRMATION_SWEEP_INTERVAL_SECONDS}s "
        f"({settings.CONFIRMATION_WINDOW_HOURS}h window, batches of {settings.CONFIRMATION_SWEEP_BATCH_SIZE})"
    )


@task_failure.connect
def on_task_failure(sender=None, task_id=None, exception=None, **kwargs):
    # Retries exhausted; the next beat tick picks the orders up again
    name = getattr(sender, "name", sender)
    logger.error(f"❌ Task {name} [{task_id}] failed: {exception}")


@worker_shutdown.connect
def on_worker_shutdown(sender=None, **kwargs):
    logger.info("🛑 Confirmation worker shutting down...")


if __name__ == "__main__":
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--queues=confirmations',
        '--concurrency=2',
        '--max-tasks-per-child=1000'
    ])
