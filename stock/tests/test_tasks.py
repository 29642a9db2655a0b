"""
Tests — Stock Celery tasks.

@file stock/tests/test_tasks.py
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from stock.models import StockLot
from stock.tasks import refresh_expired_lots_task
from tests.factories import StockLotFactory


pytestmark = pytest.mark.django_db


class TestRefreshExpiredLotsTask:

    def test_expires_overdue_lots(self):
        overdue = StockLotFactory(expiration=timezone.now() - timedelta(days=1))
        StockLotFactory(expiration=timezone.now() + timedelta(days=1))

        result = refresh_expired_lots_task.delay().get()

        assert result == {'expired_count': 1, 'lot_ids': [str(overdue.pk)]}
        overdue.refresh_from_db()
        assert overdue.status == StockLot.Status.EXPIRED

    def test_second_run_is_empty(self):
        StockLotFactory(expiration=timezone.now() - timedelta(days=1))
        refresh_expired_lots_task()
        assert refresh_expired_lots_task() == {'expired_count': 0, 'lot_ids': []}
