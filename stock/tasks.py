"""
Stock — Celery Tasks

Periodic expiry sweep for stock lots.

@file stock/tasks.py
"""

import logging

from celery import shared_task

logger = logging.getLogger('vaxtrack')


@shared_task(name='stock.refresh_expired_lots')
def refresh_expired_lots_task():
    """
    Set EXPIRED status on every VALID or PENDING lot past its expiration.
    Registered with Celery Beat to run every hour.
    """
    from .services import LotService

    expired = LotService.refresh_expired_lots()
    logger.info('refresh_expired_lots_task completed: %d lots expired.', len(expired))
    return {
        'expired_count': len(expired),
        'lot_ids': [str(lot.pk) for lot in expired],
    }
