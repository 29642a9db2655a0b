"""
Tests — Stock API endpoints (views).

@file stock/tests/test_views.py
"""

import uuid
from datetime import timedelta

import pytest
from django.contrib.auth.models import Permission
from django.urls import reverse
from django.utils import timezone

from stock.models import (
    NationalStock,
    OwnerType,
    PendingStockTransfer,
    StockLot,
    StockReservation,
)
from tests.factories import (
    HealthCenterLotFactory,
    HealthCenterStockFactory,
    NationalStockFactory,
    StockLotFactory,
    UserFactory,
    VaccineFactory,
)


pytestmark = pytest.mark.django_db


@pytest.fixture
def stock_manager_client(api_client):
    user = UserFactory()
    user.user_permissions.add(Permission.objects.get(codename='change_stocklot'))
    api_client.force_authenticate(user=user)
    return api_client


class TestApiRoot:

    def test_lists_stock_endpoints(self, api_client):
        resp = api_client.get(reverse('api-v1:api-root'))
        assert resp.status_code == 200
        assert 'lots' in resp.data['stock']


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

class TestLotEndpoints:

    def test_list_requires_auth(self, api_client):
        resp = api_client.get(reverse('api-v1:stock:lot-list'))
        assert resp.status_code == 401

    def test_list_lots(self, authenticated_client):
        StockLotFactory.create_batch(3)
        resp = authenticated_client.get(reverse('api-v1:stock:lot-list'))
        assert resp.status_code == 200
        assert len(resp.data['results']) == 3

    def test_filter_by_status(self, authenticated_client):
        StockLotFactory()
        StockLotFactory(status=StockLot.Status.EXPIRED)
        resp = authenticated_client.get(reverse('api-v1:stock:lot-list'), {'status': 'EXPIRED'})
        assert resp.status_code == 200
        assert len(resp.data['results']) == 1

    def test_retrieve_lot(self, authenticated_client):
        lot = StockLotFactory(expiration=timezone.now() + timedelta(days=10))
        resp = authenticated_client.get(reverse('api-v1:stock:lot-detail', args=[lot.pk]))
        assert resp.status_code == 200
        assert resp.data['remaining_quantity'] == lot.remaining_quantity
        assert resp.data['warning_threshold'] == 14

    def test_create_requires_permission(self, authenticated_client):
        vaccine = VaccineFactory()
        resp = authenticated_client.post(reverse('api-v1:stock:lot-list'), {
            'vaccine_id': str(vaccine.pk),
            'owner_type': OwnerType.NATIONAL,
            'quantity': 10,
            'expiration': (timezone.now() + timedelta(days=100)).isoformat(),
        }, format='json')
        assert resp.status_code == 403

    def test_create_books_delivery(self, stock_manager_client):
        vaccine = VaccineFactory()
        resp = stock_manager_client.post(reverse('api-v1:stock:lot-list'), {
            'vaccine_id': str(vaccine.pk),
            'owner_type': OwnerType.NATIONAL,
            'quantity': 250,
            'expiration': (timezone.now() + timedelta(days=100)).isoformat(),
        }, format='json')
        assert resp.status_code == 201
        assert resp.data['data']['status'] == StockLot.Status.VALID
        assert NationalStock.objects.get(vaccine=vaccine).quantity == 250

    def test_create_missing_owner_id(self, stock_manager_client):
        resp = stock_manager_client.post(reverse('api-v1:stock:lot-list'), {
            'vaccine_id': str(VaccineFactory().pk),
            'owner_type': OwnerType.DISTRICT,
            'quantity': 5,
            'expiration': (timezone.now() + timedelta(days=100)).isoformat(),
        }, format='json')
        assert resp.status_code == 400
        assert resp.data['success'] is False

    def test_destroy_cascades(self, admin_client):
        parent = StockLotFactory()
        child = StockLotFactory(vaccine=parent.vaccine, source_lot=parent)
        resp = admin_client.delete(reverse('api-v1:stock:lot-detail', args=[parent.pk]))
        assert resp.status_code == 200
        assert resp.data['data']['deleted_lot_ids'] == [str(child.pk), str(parent.pk)]
        assert StockLot.objects.count() == 0

    def test_expiring_soon(self, authenticated_client):
        soon = StockLotFactory(expiration=timezone.now() + timedelta(days=5))
        StockLotFactory(expiration=timezone.now() + timedelta(days=200))
        resp = authenticated_client.get(reverse('api-v1:stock:lot-expiring-soon'), {'days': 30})
        assert resp.status_code == 200
        assert [row['id'] for row in resp.data['results']] == [str(soon.pk)]

    def test_expiring_soon_bad_days(self, authenticated_client):
        resp = authenticated_client.get(reverse('api-v1:stock:lot-expiring-soon'), {'days': 'soon'})
        assert resp.status_code == 400

    def test_refresh_expired_staff_only(self, authenticated_client):
        resp = authenticated_client.post(reverse('api-v1:stock:lot-refresh-expired'))
        assert resp.status_code == 403

    def test_refresh_expired(self, admin_client):
        lot = StockLotFactory(expiration=timezone.now() - timedelta(hours=1))
        resp = admin_client.post(reverse('api-v1:stock:lot-refresh-expired'))
        assert resp.status_code == 200
        assert resp.data['data'] == {'expired_count': 1, 'lot_ids': [str(lot.pk)]}


# ---------------------------------------------------------------------------
# Levels and consumption
# ---------------------------------------------------------------------------

class TestStockLevelAndConsume:

    def test_stock_level(self, authenticated_client):
        stock = NationalStockFactory(quantity=42)
        resp = authenticated_client.get(reverse('api-v1:stock:stock-level'), {
            'vaccine_id': str(stock.vaccine_id), 'owner_type': OwnerType.NATIONAL,
        })
        assert resp.status_code == 200
        assert resp.data['data']['quantity'] == 42

    def test_stock_level_requires_vaccine(self, authenticated_client):
        resp = authenticated_client.get(reverse('api-v1:stock:stock-level'), {
            'owner_type': OwnerType.NATIONAL,
        })
        assert resp.status_code == 400

    def test_consume(self, stock_manager_client):
        lot = StockLotFactory(quantity=20)
        stock = NationalStockFactory(vaccine=lot.vaccine, quantity=20)
        resp = stock_manager_client.post(reverse('api-v1:stock:consume'), {
            'vaccine_id': str(lot.vaccine_id), 'owner_type': OwnerType.NATIONAL, 'quantity': 5,
        }, format='json')
        assert resp.status_code == 200
        assert resp.data['data'][0]['quantity'] == 5
        lot.refresh_from_db()
        assert lot.remaining_quantity == 15
        stock.refresh_from_db()
        assert stock.quantity == 15

    def test_consume_insufficient_is_conflict(self, stock_manager_client):
        lot = StockLotFactory(quantity=2)
        NationalStockFactory(vaccine=lot.vaccine, quantity=2)
        resp = stock_manager_client.post(reverse('api-v1:stock:consume'), {
            'vaccine_id': str(lot.vaccine_id), 'owner_type': OwnerType.NATIONAL, 'quantity': 5,
        }, format='json')
        assert resp.status_code == 409
        assert resp.data['code'] == 'INSUFFICIENT_STOCK'


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

class TestTransferEndpoints:

    def _send(self, client, vaccine, region_id, quantity=10):
        return client.post(reverse('api-v1:stock:pending-transfer-list'), {
            'vaccine_id': str(vaccine.pk),
            'from_type': OwnerType.NATIONAL,
            'to_type': OwnerType.REGIONAL,
            'to_id': str(region_id),
            'quantity': quantity,
        }, format='json')

    @pytest.fixture
    def vaccine(self):
        stock = NationalStockFactory(quantity=50)
        StockLotFactory(vaccine=stock.vaccine, quantity=50)
        return stock.vaccine

    def test_send_confirm(self, stock_manager_client, vaccine):
        resp = self._send(stock_manager_client, vaccine, uuid.uuid4())
        assert resp.status_code == 201
        pending_id = resp.data['data']['id']

        resp = stock_manager_client.post(
            reverse('api-v1:stock:pending-transfer-confirm', args=[pending_id]),
        )
        assert resp.status_code == 200
        assert resp.data['data']['status'] == PendingStockTransfer.Status.CONFIRMED

        resp = stock_manager_client.get(reverse('api-v1:stock:transfer-list'))
        assert resp.status_code == 200
        assert len(resp.data['results']) == 1
        assert resp.data['results'][0]['quantity'] == 10

    def test_send_reject(self, stock_manager_client, vaccine):
        resp = self._send(stock_manager_client, vaccine, uuid.uuid4())
        pending_id = resp.data['data']['id']

        resp = stock_manager_client.post(
            reverse('api-v1:stock:pending-transfer-reject', args=[pending_id]),
        )
        assert resp.status_code == 200
        assert resp.data['data']['status'] == PendingStockTransfer.Status.CANCELLED
        assert NationalStock.objects.get(vaccine=vaccine).quantity == 50

    def test_confirm_twice_is_conflict(self, stock_manager_client, vaccine):
        pending_id = self._send(stock_manager_client, vaccine, uuid.uuid4()).data['data']['id']
        url = reverse('api-v1:stock:pending-transfer-confirm', args=[pending_id])
        stock_manager_client.post(url)
        resp = stock_manager_client.post(url)
        assert resp.status_code == 409
        assert resp.data['code'] == 'INVALID_TRANSFER_STATE'

    def test_confirm_unknown_is_not_found(self, stock_manager_client):
        resp = stock_manager_client.post(
            reverse('api-v1:stock:pending-transfer-confirm', args=[uuid.uuid4()]),
        )
        assert resp.status_code == 404

    def test_send_insufficient(self, stock_manager_client, vaccine):
        resp = self._send(stock_manager_client, vaccine, uuid.uuid4(), quantity=51)
        assert resp.status_code == 409

    def test_transfers_are_read_only(self, admin_client):
        resp = admin_client.post(reverse('api-v1:stock:transfer-list'), {}, format='json')
        assert resp.status_code == 405


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------

class TestReservationEndpoints:

    @pytest.fixture
    def lot(self):
        lot = HealthCenterLotFactory(quantity=10, expiration=timezone.now() + timedelta(days=30))
        HealthCenterStockFactory(vaccine=lot.vaccine, health_center_id=lot.owner_id, quantity=10)
        return lot

    def _reserve(self, client, lot, **extra):
        payload = {
            'vaccine_id': str(lot.vaccine_id),
            'health_center_id': str(lot.owner_id),
            'schedule_id': str(uuid.uuid4()),
        }
        payload.update(extra)
        return client.post(reverse('api-v1:stock:reservation-list'), payload, format='json')

    def test_reserve_and_release(self, stock_manager_client, lot):
        resp = self._reserve(stock_manager_client, lot, quantity=2)
        assert resp.status_code == 201
        reservation_id = resp.data['data']['id']
        lot.refresh_from_db()
        assert lot.remaining_quantity == 8

        resp = stock_manager_client.delete(
            reverse('api-v1:stock:reservation-detail', args=[reservation_id]),
        )
        assert resp.status_code == 204
        lot.refresh_from_db()
        assert lot.remaining_quantity == 10
        assert StockReservation.objects.count() == 0

    def test_appointment_after_expiration(self, stock_manager_client, lot):
        resp = self._reserve(
            stock_manager_client, lot,
            appointment_date=(timezone.now() + timedelta(days=60)).isoformat(),
        )
        assert resp.status_code == 400
        assert resp.data['code'] == 'LOT_WILL_EXPIRE_BEFORE_APPOINTMENT'

    def test_filter_by_health_center(self, stock_manager_client, lot):
        self._reserve(stock_manager_client, lot)
        resp = stock_manager_client.get(
            reverse('api-v1:stock:reservation-list'), {'health_center_id': str(lot.owner_id)},
        )
        assert resp.status_code == 200
        assert len(resp.data['results']) == 1
        resp = stock_manager_client.get(
            reverse('api-v1:stock:reservation-list'), {'health_center_id': str(uuid.uuid4())},
        )
        assert len(resp.data['results']) == 0
