"""
Core — Model Tests

Tests for AuditLog, AuditService and the API error envelope.

@file core/tests/test_models.py
"""

import uuid

import pytest

from core.exceptions import (
    InsufficientStock,
    InvalidQuantity,
    InvalidTransferState,
    StockError,
    TransferNotFound,
    standard_exception_handler,
)
from core.models import AuditLog
from core.services import AuditService
from tests.factories import AuditLogFactory, StockLotFactory, UserFactory


@pytest.mark.django_db
class TestAuditLog:
    def test_create_audit_log(self):
        user = UserFactory()
        log = AuditService.log(
            actor=user,
            action=AuditLog.ActionChoices.CREATE,
            model_name='TestModel',
            object_id='test-123',
            new_values={'key': 'value'},
        )
        assert log.pk is not None
        assert log.action == 'CREATE'
        assert log.model_name == 'TestModel'
        assert log.actor == user

    def test_object_id_is_stringified(self):
        object_id = uuid.uuid4()
        log = AuditService.log(
            actor=None, action=AuditLog.ActionChoices.DELETE,
            model_name='StockLot', object_id=object_id,
        )
        assert log.object_id == str(object_id)

    def test_factory(self):
        log = AuditLogFactory()
        assert log.pk is not None
        assert 'StockLot' in str(log)

    def test_snapshot_serialises_lot(self):
        lot = StockLotFactory()
        snapshot = AuditService.snapshot(lot)
        assert snapshot['id'] == str(lot.pk)
        assert snapshot['vaccine'] == str(lot.vaccine_id)
        assert snapshot['remaining_quantity'] == lot.remaining_quantity
        assert isinstance(snapshot['expiration'], str)

    def test_snapshot_restricted_fields(self):
        lot = StockLotFactory()
        snapshot = AuditService.snapshot(lot, fields=['quantity', 'status'])
        assert set(snapshot) == {'quantity', 'status'}


class TestStockErrors:
    def test_default_detail_and_code(self):
        exc = InvalidQuantity()
        assert exc.code == 'INVALID_QUANTITY'
        assert str(exc) == exc.default_detail

    def test_custom_detail(self):
        exc = StockError(detail='nope', code='CUSTOM')
        assert exc.detail == 'nope'
        assert exc.code == 'CUSTOM'

    @pytest.mark.parametrize('exc, expected', [
        (InsufficientStock(), 409),
        (TransferNotFound(), 404),
        (InvalidTransferState(), 409),
        (InvalidQuantity(), 400),
    ])
    def test_handler_maps_status(self, exc, expected):
        response = standard_exception_handler(exc, {})
        assert response.status_code == expected
        assert response.data['success'] is False
        assert response.data['code'] == exc.code
        assert response.data['errors']['detail'] == [exc.detail]
