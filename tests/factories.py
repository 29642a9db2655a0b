"""
VaxTrack — Test Factories

Factory Boy factories for generating test data. Used across all test
modules.

@file tests/factories.py
"""

import uuid
from datetime import timedelta

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone

from core.models import AuditLog
from stock.models import (
    DistrictStock,
    HealthCenterStock,
    NationalStock,
    OwnerType,
    PendingStockTransfer,
    PendingStockTransferLot,
    RegionalStock,
    StockLot,
    StockReservation,
)
from vaccines.models import Vaccine


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f'agent-{n}')
    email = factory.LazyAttribute(lambda o: f'{o.username}@vaxtrack.test')
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        password = extracted or 'TestPass2026!'
        self.set_password(password)
        if create:
            self.save(update_fields=['password'])


class SuperuserFactory(UserFactory):
    is_staff = True
    is_superuser = True


# ---------------------------------------------------------------------------
# Vaccines
# ---------------------------------------------------------------------------

class VaccineFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Vaccine

    name = factory.Sequence(lambda n: f'Vaccine-{n}')
    description = factory.Faker('sentence')
    doses_required = 1
    is_active = True


# ---------------------------------------------------------------------------
# Stock lots and aggregate counters
# ---------------------------------------------------------------------------

class StockLotFactory(factory.django.DjangoModelFactory):
    """A VALID national lot expiring in 180 days unless overridden."""

    class Meta:
        model = StockLot

    vaccine = factory.SubFactory(VaccineFactory)
    owner_type = OwnerType.NATIONAL
    owner_id = None
    quantity = 100
    remaining_quantity = factory.LazyAttribute(lambda o: o.quantity)
    expiration = factory.LazyFunction(lambda: timezone.now() + timedelta(days=180))
    status = StockLot.Status.VALID


class HealthCenterLotFactory(StockLotFactory):
    owner_type = OwnerType.HEALTHCENTER
    owner_id = factory.LazyFunction(uuid.uuid4)


class NationalStockFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = NationalStock

    vaccine = factory.SubFactory(VaccineFactory)
    quantity = 0


class RegionalStockFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = RegionalStock

    vaccine = factory.SubFactory(VaccineFactory)
    region_id = factory.LazyFunction(uuid.uuid4)
    quantity = 0


class DistrictStockFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = DistrictStock

    vaccine = factory.SubFactory(VaccineFactory)
    district_id = factory.LazyFunction(uuid.uuid4)
    quantity = 0


class HealthCenterStockFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = HealthCenterStock

    vaccine = factory.SubFactory(VaccineFactory)
    health_center_id = factory.LazyFunction(uuid.uuid4)
    quantity = 0


# ---------------------------------------------------------------------------
# Transfers and reservations
# ---------------------------------------------------------------------------

class PendingStockTransferFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = PendingStockTransfer

    vaccine = factory.SubFactory(VaccineFactory)
    from_type = OwnerType.NATIONAL
    from_id = None
    to_type = OwnerType.REGIONAL
    to_id = factory.LazyFunction(uuid.uuid4)
    quantity = 10
    status = PendingStockTransfer.Status.PENDING


class PendingStockTransferLotFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = PendingStockTransferLot

    pending_transfer = factory.SubFactory(PendingStockTransferFactory)
    lot = factory.SubFactory(
        StockLotFactory, vaccine=factory.SelfAttribute('..pending_transfer.vaccine'),
    )
    quantity = factory.LazyAttribute(lambda o: o.pending_transfer.quantity)
    expiration = factory.LazyAttribute(lambda o: o.lot.expiration if o.lot else None)


class StockReservationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = StockReservation

    stock_lot = factory.SubFactory(HealthCenterLotFactory)
    schedule_id = factory.LazyFunction(uuid.uuid4)
    quantity = 1


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class AuditLogFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = AuditLog

    actor = factory.SubFactory(UserFactory)
    action = AuditLog.ActionChoices.CREATE
    model_name = 'StockLot'
    object_id = factory.LazyFunction(lambda: str(uuid.uuid4()))
