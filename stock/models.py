"""
Stock — Models

Lot-based vaccine stock. Physical inventory is held as expiring lots owned
by one level of the custody hierarchy (national, regional, district,
health center). Each level also keeps a denormalised running dose counter
per vaccine (StockAggregate) that services keep in step with the lots.

Completed transfers are INSERT ONLY; pending transfers, reservations and
lots are mutated exclusively through stock.services.

@file stock/models.py
"""

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from core.models import TimestampMixin


class OwnerType(models.TextChoices):
    NATIONAL = 'NATIONAL', _('National')
    REGIONAL = 'REGIONAL', _('Regional')
    DISTRICT = 'DISTRICT', _('District')
    HEALTHCENTER = 'HEALTHCENTER', _('Health center')


def normalize_owner_id(owner_type, owner_id):
    """There is exactly one national owner, so its id is always None."""
    if owner_type == OwnerType.NATIONAL:
        return None
    return owner_id or None


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

class StockLot(TimestampMixin):
    """
    A batch of doses of one vaccine, held by one owner, expiring on one date.

    remaining_quantity starts equal to quantity and moves with consumption,
    reservation and release. PENDING lots are created empty at the receiver
    of a pending transfer and filled when the transfer is confirmed.
    """

    class Status(models.TextChoices):
        VALID = 'VALID', _('Valid')
        EXPIRED = 'EXPIRED', _('Expired')
        PENDING = 'PENDING', _('Pending')

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False,
    )
    vaccine = models.ForeignKey(
        'vaccines.Vaccine',
        on_delete=models.PROTECT,
        related_name='stock_lots',
        verbose_name=_('vaccine'),
    )
    owner_type = models.CharField(
        _('owner type'), max_length=12,
        choices=OwnerType.choices, db_index=True,
    )
    owner_id = models.UUIDField(
        _('owner ID'), null=True, blank=True, db_index=True,
        help_text=_('Region, district or health center UUID; empty for national stock'),
    )
    quantity = models.PositiveIntegerField(_('quantity'))
    remaining_quantity = models.PositiveIntegerField(_('remaining quantity'))
    expiration = models.DateTimeField(_('expiration'), db_index=True)
    status = models.CharField(
        _('status'), max_length=8,
        choices=Status.choices, default=Status.VALID, db_index=True,
    )
    source_lot = models.ForeignKey(
        'self',
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='derived_lots',
        verbose_name=_('source lot'),
    )
    pending_transfer = models.ForeignKey(
        'PendingStockTransfer',
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='destination_lots',
        verbose_name=_('pending transfer'),
        help_text=_('Set while the lot waits for a pending transfer to be confirmed'),
    )

    class Meta:
        verbose_name = _('stock lot')
        verbose_name_plural = _('stock lots')
        ordering = ['expiration']
        indexes = [
            models.Index(
                fields=['vaccine', 'owner_type', 'owner_id', 'status'],
                name='stock_lot_owner_idx',
            ),
            models.Index(fields=['status', 'expiration'], name='stock_lot_status_exp_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(remaining_quantity__lte=models.F('quantity')),
                name='stock_lot_remaining_lte_quantity',
            ),
        ]

    def __str__(self):
        owner = self.owner_id or 'national'
        return f'Lot {self.pk} {self.vaccine_id} {self.owner_type}:{owner} ({self.remaining_quantity}/{self.quantity})'

    @property
    def is_expired(self) -> bool:
        return self.expiration <= timezone.now()

    @property
    def days_to_expiry(self) -> float:
        return (self.expiration - timezone.now()).total_seconds() / 86400


# ---------------------------------------------------------------------------
# Aggregate counters, one table per owner level
# ---------------------------------------------------------------------------

class StockAggregate(TimestampMixin):
    """
    Running dose counter for one vaccine at one owner. quantity never goes
    below zero. Concrete levels only differ in the column naming the owner.
    """

    owner_type: str = ''
    owner_field: str | None = None

    vaccine = models.ForeignKey(
        'vaccines.Vaccine',
        on_delete=models.CASCADE,
        related_name='+',
        verbose_name=_('vaccine'),
    )
    quantity = models.PositiveIntegerField(_('quantity'), default=0)

    class Meta:
        abstract = True

    @classmethod
    def owner_lookup(cls, vaccine_id, owner_id=None) -> dict:
        lookup = {'vaccine_id': vaccine_id}
        if cls.owner_field:
            lookup[cls.owner_field] = owner_id
        return lookup

    @property
    def owner_id(self):
        return getattr(self, self.owner_field) if self.owner_field else None


class NationalStock(StockAggregate):
    owner_type = OwnerType.NATIONAL

    class Meta:
        verbose_name = _('national stock')
        verbose_name_plural = _('national stocks')
        constraints = [
            models.UniqueConstraint(fields=['vaccine'], name='unique_national_stock'),
        ]

    def __str__(self):
        return f'NATIONAL {self.vaccine_id}: {self.quantity}'


class RegionalStock(StockAggregate):
    owner_type = OwnerType.REGIONAL
    owner_field = 'region_id'

    region_id = models.UUIDField(_('region ID'), db_index=True)

    class Meta:
        verbose_name = _('regional stock')
        verbose_name_plural = _('regional stocks')
        constraints = [
            models.UniqueConstraint(fields=['vaccine', 'region_id'], name='unique_regional_stock'),
        ]

    def __str__(self):
        return f'REGIONAL {self.region_id} {self.vaccine_id}: {self.quantity}'


class DistrictStock(StockAggregate):
    owner_type = OwnerType.DISTRICT
    owner_field = 'district_id'

    district_id = models.UUIDField(_('district ID'), db_index=True)

    class Meta:
        verbose_name = _('district stock')
        verbose_name_plural = _('district stocks')
        constraints = [
            models.UniqueConstraint(fields=['vaccine', 'district_id'], name='unique_district_stock'),
        ]

    def __str__(self):
        return f'DISTRICT {self.district_id} {self.vaccine_id}: {self.quantity}'


class HealthCenterStock(StockAggregate):
    owner_type = OwnerType.HEALTHCENTER
    owner_field = 'health_center_id'

    health_center_id = models.UUIDField(_('health center ID'), db_index=True)

    class Meta:
        verbose_name = _('health center stock')
        verbose_name_plural = _('health center stocks')
        constraints = [
            models.UniqueConstraint(
                fields=['vaccine', 'health_center_id'], name='unique_health_center_stock',
            ),
        ]

    def __str__(self):
        return f'HEALTHCENTER {self.health_center_id} {self.vaccine_id}: {self.quantity}'


AGGREGATE_MODELS: dict[str, type[StockAggregate]] = {
    OwnerType.NATIONAL: NationalStock,
    OwnerType.REGIONAL: RegionalStock,
    OwnerType.DISTRICT: DistrictStock,
    OwnerType.HEALTHCENTER: HealthCenterStock,
}


# ---------------------------------------------------------------------------
# Completed transfers (insert only)
# ---------------------------------------------------------------------------

class StockTransfer(models.Model):
    """
    Immutable record of a completed movement of doses between two owners.
    quantity is the sum of the attached lot lines.
    """

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False,
    )
    vaccine = models.ForeignKey(
        'vaccines.Vaccine',
        on_delete=models.PROTECT,
        related_name='stock_transfers',
        verbose_name=_('vaccine'),
    )
    from_type = models.CharField(_('from type'), max_length=12, choices=OwnerType.choices)
    from_id = models.UUIDField(_('from ID'), null=True, blank=True)
    to_type = models.CharField(_('to type'), max_length=12, choices=OwnerType.choices)
    to_id = models.UUIDField(_('to ID'), null=True, blank=True)
    quantity = models.PositiveIntegerField(_('quantity'))
    created_at = models.DateTimeField(
        _('created at'), auto_now_add=True, db_index=True,
    )
    # No updated_at — immutable record.

    class Meta:
        verbose_name = _('stock transfer')
        verbose_name_plural = _('stock transfers')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['from_type', 'from_id'], name='stock_transfer_from_idx'),
            models.Index(fields=['to_type', 'to_id'], name='stock_transfer_to_idx'),
        ]

    def __str__(self):
        return f'{self.quantity} x {self.vaccine_id} {self.from_type}:{self.from_id} -> {self.to_type}:{self.to_id}'

    def save(self, *args, **kwargs):
        if self.pk and StockTransfer.objects.filter(pk=self.pk).exists():
            raise NotImplementedError('StockTransfer is insert-only; updates are not allowed.')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise NotImplementedError('StockTransfer records cannot be deleted.')


class StockTransferLot(models.Model):
    """One lot allocation of a completed transfer."""

    transfer = models.ForeignKey(
        StockTransfer,
        on_delete=models.CASCADE,
        related_name='lots',
        verbose_name=_('transfer'),
    )
    lot = models.ForeignKey(
        StockLot,
        on_delete=models.CASCADE,
        related_name='transfer_lines',
        verbose_name=_('lot'),
    )
    quantity = models.PositiveIntegerField(_('quantity'))

    class Meta:
        verbose_name = _('stock transfer lot')
        verbose_name_plural = _('stock transfer lots')

    def __str__(self):
        return f'{self.quantity} from lot {self.lot_id}'


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------

class StockReservation(models.Model):
    """
    Soft hold of doses from one lot against one scheduled appointment.
    schedule_id points at the appointment in the scheduling system.
    """

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False,
    )
    stock_lot = models.ForeignKey(
        StockLot,
        on_delete=models.CASCADE,
        related_name='reservations',
        verbose_name=_('stock lot'),
    )
    schedule_id = models.UUIDField(_('schedule ID'), null=True, blank=True, db_index=True)
    quantity = models.PositiveIntegerField(_('quantity'), default=1)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('stock reservation')
        verbose_name_plural = _('stock reservations')
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.quantity} reserved on lot {self.stock_lot_id} for {self.schedule_id}'


# ---------------------------------------------------------------------------
# Pending transfers
# ---------------------------------------------------------------------------

class PendingStockTransfer(TimestampMixin):
    """A transfer already taken from the sender, awaiting receipt confirmation."""

    class Status(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        CONFIRMED = 'CONFIRMED', _('Confirmed')
        CANCELLED = 'CANCELLED', _('Cancelled')

    id = models.UUIDField(
        primary_key=True, default=uuid.uuid4, editable=False,
    )
    vaccine = models.ForeignKey(
        'vaccines.Vaccine',
        on_delete=models.PROTECT,
        related_name='pending_transfers',
        verbose_name=_('vaccine'),
    )
    from_type = models.CharField(_('from type'), max_length=12, choices=OwnerType.choices)
    from_id = models.UUIDField(_('from ID'), null=True, blank=True)
    to_type = models.CharField(_('to type'), max_length=12, choices=OwnerType.choices)
    to_id = models.UUIDField(_('to ID'), null=True, blank=True)
    quantity = models.PositiveIntegerField(_('quantity'))
    status = models.CharField(
        _('status'), max_length=10,
        choices=Status.choices, default=Status.PENDING, db_index=True,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='+',
        verbose_name=_('created by'),
    )
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='+',
        verbose_name=_('resolved by'),
    )
    resolved_at = models.DateTimeField(_('resolved at'), null=True, blank=True)

    class Meta:
        verbose_name = _('pending stock transfer')
        verbose_name_plural = _('pending stock transfers')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['to_type', 'to_id', 'status'], name='stock_pending_to_idx'),
        ]

    def __str__(self):
        return f'{self.status} {self.quantity} x {self.vaccine_id} -> {self.to_type}:{self.to_id}'


class PendingStockTransferLot(models.Model):
    """
    One sender lot allocation of a pending transfer. The expiration is kept
    as a snapshot so the doses can be recreated if the sender lot is gone
    by the time the transfer is rejected.
    """

    pending_transfer = models.ForeignKey(
        PendingStockTransfer,
        on_delete=models.CASCADE,
        related_name='lots',
        verbose_name=_('pending transfer'),
    )
    lot = models.ForeignKey(
        StockLot,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name='pending_transfer_lines',
        verbose_name=_('lot'),
    )
    quantity = models.PositiveIntegerField(_('quantity'))
    expiration = models.DateTimeField(_('lot expiration'), null=True, blank=True)

    class Meta:
        verbose_name = _('pending stock transfer lot')
        verbose_name_plural = _('pending stock transfer lots')

    def __str__(self):
        return f'{self.quantity} from lot {self.lot_id}'
