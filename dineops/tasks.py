"""
Celery Tasks
Background jobs for the platform: the subscription reminder sweep.
"""

import asyncio
import logging
import time
from datetime import datetime

from dineops.celery_worker import celery_app
from dineops.services.restaurants import get_platform

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    retry_backoff=True,
)
def check_all_subscriptions(self) -> dict:
    """
    Create expiry reminders for every active restaurant whose plan is
    expired or about to expire. Safe to run repeatedly: reminders are
    deduplicated per restaurant and type.

    Returns:
        dict: checked / created / failed counts
    """
    task_id = self.request.id
    logger.info(f"📋 Task {task_id}: subscription sweep started")
    start_time = time.time()

    try:
        counts = asyncio.run(get_platform().check_all_subscriptions())
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        logger.error(f"❌ Task {task_id}: subscription sweep failed after {elapsed}s - {e}")
        raise self.retry(exc=e)

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"✅ Task {task_id}: {counts['created']} reminder(s) created in {elapsed}s")
    return {**counts, 'task_id': task_id, 'processing_time_seconds': elapsed}


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
