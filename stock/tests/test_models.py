"""
Tests — Stock models: lot constraints, aggregate registry, insert-only
completed transfers.

@file stock/tests/test_models.py
"""

import uuid
from datetime import timedelta

import pytest
from django.db import IntegrityError
from django.utils import timezone

from stock.models import (
    AGGREGATE_MODELS,
    DistrictStock,
    HealthCenterStock,
    NationalStock,
    OwnerType,
    RegionalStock,
    StockTransfer,
    normalize_owner_id,
)
from tests.factories import (
    HealthCenterStockFactory,
    NationalStockFactory,
    StockLotFactory,
    VaccineFactory,
)


pytestmark = pytest.mark.django_db


class TestNormalizeOwnerId:

    def test_national_is_always_none(self):
        assert normalize_owner_id(OwnerType.NATIONAL, uuid.uuid4()) is None

    def test_other_levels_keep_id(self):
        owner_id = uuid.uuid4()
        assert normalize_owner_id(OwnerType.DISTRICT, owner_id) == owner_id

    def test_empty_id_becomes_none(self):
        assert normalize_owner_id(OwnerType.REGIONAL, '') is None


class TestStockLot:

    def test_remaining_cannot_exceed_quantity(self):
        with pytest.raises(IntegrityError):
            StockLotFactory(quantity=10, remaining_quantity=11)

    def test_is_expired(self):
        lot = StockLotFactory(expiration=timezone.now() - timedelta(minutes=1))
        assert lot.is_expired is True

    def test_days_to_expiry(self):
        lot = StockLotFactory(expiration=timezone.now() + timedelta(days=10))
        assert 9.9 < lot.days_to_expiry <= 10

    def test_ordered_by_expiration(self):
        vaccine = VaccineFactory()
        late = StockLotFactory(vaccine=vaccine, expiration=timezone.now() + timedelta(days=90))
        early = StockLotFactory(vaccine=vaccine, expiration=timezone.now() + timedelta(days=5))
        assert list(vaccine.stock_lots.all()) == [early, late]

    def test_derived_lots_reverse_relation(self):
        parent = StockLotFactory()
        child = StockLotFactory(vaccine=parent.vaccine, source_lot=parent)
        assert list(parent.derived_lots.all()) == [child]


class TestStockAggregates:

    def test_registry_covers_every_owner_type(self):
        assert set(AGGREGATE_MODELS) == set(OwnerType.values)
        assert AGGREGATE_MODELS[OwnerType.NATIONAL] is NationalStock
        assert AGGREGATE_MODELS[OwnerType.REGIONAL] is RegionalStock
        assert AGGREGATE_MODELS[OwnerType.DISTRICT] is DistrictStock
        assert AGGREGATE_MODELS[OwnerType.HEALTHCENTER] is HealthCenterStock

    def test_owner_lookup(self):
        vaccine_id = uuid.uuid4()
        owner_id = uuid.uuid4()
        assert NationalStock.owner_lookup(vaccine_id, owner_id) == {'vaccine_id': vaccine_id}
        assert DistrictStock.owner_lookup(vaccine_id, owner_id) == {
            'vaccine_id': vaccine_id, 'district_id': owner_id,
        }

    def test_owner_id_property(self):
        stock = HealthCenterStockFactory()
        assert stock.owner_id == stock.health_center_id
        assert NationalStockFactory().owner_id is None

    def test_one_national_row_per_vaccine(self):
        stock = NationalStockFactory()
        with pytest.raises(IntegrityError):
            NationalStockFactory(vaccine=stock.vaccine)

    def test_one_health_center_row_per_vaccine(self):
        stock = HealthCenterStockFactory()
        with pytest.raises(IntegrityError):
            HealthCenterStockFactory(vaccine=stock.vaccine, health_center_id=stock.health_center_id)


class TestStockTransferInsertOnly:

    def _transfer(self):
        transfer = StockTransfer(
            vaccine=VaccineFactory(),
            from_type=OwnerType.NATIONAL,
            to_type=OwnerType.REGIONAL,
            to_id=uuid.uuid4(),
            quantity=5,
        )
        transfer.save()
        return transfer

    def test_update_blocked(self):
        transfer = self._transfer()
        transfer.quantity = 6
        with pytest.raises(NotImplementedError):
            transfer.save()

    def test_delete_blocked(self):
        transfer = self._transfer()
        with pytest.raises(NotImplementedError):
            transfer.delete()
