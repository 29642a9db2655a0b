"""
Tests — Vaccine catalogue model.

@file vaccines/tests/test_models.py
"""

import pytest
from django.db import IntegrityError

from stock.models import StockLot
from tests.factories import StockLotFactory, VaccineFactory
from vaccines.admin import VaccineAdmin
from vaccines.models import Vaccine


pytestmark = pytest.mark.django_db


class TestVaccine:

    def test_str_is_name(self):
        vaccine = VaccineFactory(name='BCG')
        assert str(vaccine) == 'BCG'

    def test_default_single_dose(self):
        vaccine = Vaccine.objects.create(name='Polio')
        assert vaccine.doses_required == 1
        assert vaccine.is_active is True

    def test_name_is_unique(self):
        VaccineFactory(name='Measles')
        with pytest.raises(IntegrityError):
            VaccineFactory(name='Measles')

    def test_doses_required_must_be_positive(self):
        with pytest.raises(IntegrityError):
            VaccineFactory(doses_required=0)

    def test_admin_counts_valid_doses_only(self):
        from django.contrib.admin.sites import site

        vaccine = VaccineFactory()
        StockLotFactory(vaccine=vaccine, quantity=40)
        StockLotFactory(vaccine=vaccine, quantity=10, remaining_quantity=5)
        StockLotFactory(vaccine=vaccine, quantity=30, status=StockLot.Status.EXPIRED)

        admin = VaccineAdmin(Vaccine, site)
        assert admin.doses_in_stock(vaccine) == 45
