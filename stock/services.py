"""
Stock — Service Layer

Lot ledger, aggregate counters, FIFO-by-expiration allocation, transfer
recording, dose reservation and cascade deletion. Every multi-row mutation
runs inside one transaction; lot rows are locked with SELECT ... FOR UPDATE
and, on PostgreSQL, an advisory lock serialises work on one owner's stock
of one vaccine.

Each mutating operation ends with notify_stock_changed() for the owner and
vaccine it touched.

@file stock/services.py
"""

import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from uuid import UUID

from django.conf import settings
from django.db import connection, transaction
from django.db.models import F
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from core.constants import (
    AUDIT_ACTION_CREATE,
    AUDIT_ACTION_DELETE,
    AUDIT_ACTION_STATUS_CHANGE,
)
from core.exceptions import (
    AllLotsExpired,
    InsufficientStock,
    InvalidAppointmentDate,
    InvalidExpiration,
    InvalidOwner,
    InvalidQuantity,
    InvalidTransferState,
    LotWillExpireBeforeAppointment,
    NoAvailableLot,
    StockError,
    TransferNotFound,
)
from core.services import AuditService

from .models import (
    AGGREGATE_MODELS,
    HealthCenterStock,
    OwnerType,
    PendingStockTransfer,
    PendingStockTransferLot,
    StockLot,
    StockReservation,
    StockTransfer,
    StockTransferLot,
    normalize_owner_id,
)
from .signals import notify_stock_changed

logger = logging.getLogger('vaxtrack')

DEFAULT_RECREATED_LOT_LIFETIME = timedelta(days=365)


@dataclass(frozen=True)
class LotAllocation:
    """Doses taken from one lot by an allocation."""

    lot_id: UUID
    quantity: int
    expiration: datetime
    status: str


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------

def ensure_positive_integer(value, field_name: str = 'Quantity') -> int:
    """Accept ints, integral floats and numeric strings; reject everything else."""
    try:
        if isinstance(value, bool):
            raise TypeError(value)
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(value)
        if isinstance(value, str):
            value = value.strip()
        parsed = int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidQuantity(detail=f'{field_name} must be a positive integer.')
    if parsed <= 0:
        raise InvalidQuantity(detail=f'{field_name} must be a positive integer.')
    return parsed


def parse_moment(value, error_class=InvalidExpiration) -> datetime:
    """
    Turn a date, datetime or ISO-8601 string into an aware datetime.
    Bare dates resolve to local midnight.
    """
    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = parse_datetime(value.strip())
            if parsed is None:
                day = parse_date(value.strip())
                parsed = datetime.combine(day, time.min) if day else None
        except ValueError:
            parsed = None
    if parsed is None:
        raise error_class(detail=f'Invalid date: {value!r}.')
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def start_of_day(value) -> datetime:
    """Local midnight of the calendar day of an appointment."""
    moment = parse_moment(value, error_class=InvalidAppointmentDate)
    day = timezone.localtime(moment).date()
    return timezone.make_aware(datetime.combine(day, time.min))


def status_for_expiration(expiration: datetime) -> str:
    if expiration <= timezone.now():
        return StockLot.Status.EXPIRED
    return StockLot.Status.VALID


def find_next_threshold(days_remaining: float, thresholds: Iterable[int] | None = None) -> int | None:
    """
    Smallest warning threshold (in days) that days_remaining falls under.
    Already-expired lots map to the smallest threshold, lots beyond every
    threshold to the largest.
    """
    if thresholds is None:
        thresholds = settings.STOCK_EXPIRATION_WARNING_DAYS
    ordered = sorted(thresholds)
    if not ordered:
        return None
    for threshold in ordered:
        if days_remaining <= threshold:
            return threshold
    return ordered[-1]


def _check_owner(owner_type, owner_id):
    if owner_type not in OwnerType.values:
        raise InvalidOwner(detail=f'Unknown owner type: {owner_type}.')
    normalized = normalize_owner_id(owner_type, owner_id)
    if owner_type != OwnerType.NATIONAL and normalized is None:
        raise InvalidOwner(detail=f'An owner ID is required for {owner_type} stock.')
    return normalized


def _advisory_lock_key(owner_type: str, owner_id, vaccine_id) -> int:
    """Stable bigint key for PostgreSQL advisory lock (same owner+vaccine = same key)."""
    raw = f'{owner_type}:{owner_id or "root"}:{vaccine_id}'.encode()
    h = hashlib.sha256(raw).digest()[:8]
    return int.from_bytes(h, 'big') % (2**63)


def _lock_owner_stock(owner_type: str, owner_id, vaccine_id) -> None:
    if connection.vendor == 'postgresql':
        lock_key = _advisory_lock_key(owner_type, owner_id, vaccine_id)
        with connection.cursor() as cursor:
            cursor.execute('SELECT pg_advisory_xact_lock(%s)', [lock_key])


def _owner_lots(vaccine_id, owner_type, owner_id):
    return StockLot.objects.filter(
        vaccine_id=vaccine_id,
        owner_type=owner_type,
        owner_id=normalize_owner_id(owner_type, owner_id),
    )


# ---------------------------------------------------------------------------
# Aggregate counters
# ---------------------------------------------------------------------------

class AggregateService:
    """Per-owner running dose counters, dispatched on owner type."""

    @staticmethod
    def _resolve(vaccine_id, owner_type, owner_id):
        model = AGGREGATE_MODELS.get(owner_type)
        if model is None:
            return None, None
        owner_id = normalize_owner_id(owner_type, owner_id)
        if model.owner_field and owner_id is None:
            return None, None
        return model, model.owner_lookup(vaccine_id, owner_id)

    @classmethod
    def get_quantity(cls, *, vaccine_id, owner_type, owner_id=None) -> int:
        model, lookup = cls._resolve(vaccine_id, owner_type, owner_id)
        if model is None:
            return 0
        stock = model.objects.filter(**lookup).first()
        return stock.quantity if stock else 0

    @classmethod
    @transaction.atomic
    def modify_stock_quantity(cls, *, vaccine_id, owner_type, owner_id=None, delta: int) -> int | None:
        """
        Apply delta to an existing counter, flooring at zero. Returns the new
        quantity, or None when delta is zero or the counter row is missing.
        Never creates a counter.
        """
        if not delta:
            return None
        model, lookup = cls._resolve(vaccine_id, owner_type, owner_id)
        if model is None:
            return None
        stock = model.objects.select_for_update().filter(**lookup).first()
        if stock is None:
            logger.warning(
                'No %s stock row for vaccine=%s owner=%s; delta %s ignored.',
                owner_type, vaccine_id, owner_id, delta,
            )
            return None
        stock.quantity = max(0, stock.quantity + delta)
        stock.save(update_fields=['quantity', 'updated_at'])
        return stock.quantity

    @classmethod
    @transaction.atomic
    def increment_or_create(cls, *, vaccine_id, owner_type, owner_id=None, quantity: int) -> int:
        """Add doses to a counter, creating it at `quantity` when missing."""
        model, lookup = cls._resolve(vaccine_id, owner_type, owner_id)
        if model is None:
            raise InvalidOwner(detail=f'An owner ID is required for {owner_type} stock.')
        stock, created = model.objects.select_for_update().get_or_create(
            **lookup, defaults={'quantity': quantity},
        )
        if not created:
            stock.quantity += quantity
            stock.save(update_fields=['quantity', 'updated_at'])
        return stock.quantity


# ---------------------------------------------------------------------------
# Lot ledger
# ---------------------------------------------------------------------------

class LotService:
    """Lot lifecycle: creation, expiry sweep, direct and cascade deletion."""

    @staticmethod
    @transaction.atomic
    def create_lot(
        *,
        vaccine_id,
        owner_type: str,
        owner_id=None,
        quantity,
        expiration,
        source_lot_id=None,
        status: str | None = None,
        pending_transfer_id=None,
        actor=None,
    ) -> StockLot:
        """
        Create a lot with remaining_quantity = quantity. A lot whose
        expiration is already past is stored EXPIRED whatever status was
        requested. Only PENDING lots may start empty.
        """
        expiration_at = parse_moment(expiration)
        owner_id = _check_owner(owner_type, owner_id)
        if status is not None and status not in StockLot.Status.values:
            raise StockError(detail=f'Unknown lot status: {status}.', code='INVALID_STATUS')

        is_pending = status == StockLot.Status.PENDING
        try:
            qty = ensure_positive_integer(quantity, 'Lot quantity')
        except InvalidQuantity:
            if not (is_pending and not isinstance(quantity, bool) and quantity in (0, '0')):
                raise
            qty = 0

        lot_status = status or status_for_expiration(expiration_at)
        if expiration_at <= timezone.now():
            lot_status = StockLot.Status.EXPIRED

        lot = StockLot.objects.create(
            vaccine_id=vaccine_id,
            owner_type=owner_type,
            owner_id=owner_id,
            quantity=qty,
            remaining_quantity=qty,
            expiration=expiration_at,
            status=lot_status,
            source_lot_id=source_lot_id,
            pending_transfer_id=pending_transfer_id,
        )

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='StockLot',
            object_id=lot.pk,
            new_values=AuditService.snapshot(lot),
        )
        logger.info(
            'StockLot %s created qty=%s status=%s owner=%s:%s vaccine=%s',
            lot.pk, qty, lot_status, owner_type, owner_id, vaccine_id,
        )
        notify_stock_changed(vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id)
        return lot

    @staticmethod
    @transaction.atomic
    def receive_stock(*, vaccine_id, owner_type: str, owner_id=None, quantity, expiration, actor=None) -> StockLot:
        """
        Book a delivery of new doses: one lot plus the matching increment
        of the owner's counter (created if missing). Already-expired
        deliveries are stored as EXPIRED lots and leave the counter alone.
        """
        lot = LotService.create_lot(
            vaccine_id=vaccine_id,
            owner_type=owner_type,
            owner_id=owner_id,
            quantity=quantity,
            expiration=expiration,
            actor=actor,
        )
        if lot.status == StockLot.Status.VALID:
            AggregateService.increment_or_create(
                vaccine_id=vaccine_id,
                owner_type=owner_type,
                owner_id=lot.owner_id,
                quantity=lot.quantity,
            )
        return lot

    @staticmethod
    @transaction.atomic
    def refresh_expired_lots() -> list[StockLot]:
        """
        Flip every VALID or PENDING lot whose expiration has passed to
        EXPIRED. Returns the flipped lots; a second call with no time
        elapsed returns [].
        """
        now = timezone.now()
        expired = list(
            StockLot.objects.select_for_update().filter(
                status__in=[StockLot.Status.VALID, StockLot.Status.PENDING],
                expiration__lte=now,
            ),
        )
        if not expired:
            return []

        StockLot.objects.filter(pk__in=[lot.pk for lot in expired]).update(
            status=StockLot.Status.EXPIRED, updated_at=now,
        )

        combos = {}
        for lot in expired:
            lot.status = StockLot.Status.EXPIRED
            combos[(lot.owner_type, lot.owner_id, lot.vaccine_id)] = lot
        for owner_type, owner_id, vaccine_id in combos:
            notify_stock_changed(vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id)

        logger.info('Marked %d stock lot(s) as EXPIRED.', len(expired))
        return expired

    @staticmethod
    @transaction.atomic
    def delete_lot_direct(lot_id):
        """
        Delete one lot without following derived lots. Returns the deleted
        id, or None when the lot does not exist. Pending transfer lines keep
        their snapshot with the lot reference cleared.
        """
        lot = StockLot.objects.select_for_update().filter(pk=lot_id).first()
        if lot is None:
            return None

        deleted_id = lot.pk
        StockTransferLot.objects.filter(lot_id=deleted_id).delete()
        StockReservation.objects.filter(stock_lot_id=deleted_id).delete()

        if lot.remaining_quantity > 0:
            AggregateService.modify_stock_quantity(
                vaccine_id=lot.vaccine_id,
                owner_type=lot.owner_type,
                owner_id=lot.owner_id,
                delta=-lot.remaining_quantity,
            )

        StockLot.objects.filter(pk=deleted_id).delete()
        notify_stock_changed(
            vaccine_id=lot.vaccine_id, owner_type=lot.owner_type, owner_id=lot.owner_id,
        )
        logger.info('StockLot %s deleted (remaining=%s).', deleted_id, lot.remaining_quantity)
        return deleted_id

    @staticmethod
    @transaction.atomic
    def delete_lot_cascade(lot_id, actor=None) -> list:
        """
        Delete a lot and every lot derived from it, directly or transitively.

        Reservations and pending transfer lines of each visited lot are
        removed during the walk; transfer lines are removed in one batch;
        lots are deleted deepest first, each reversing its remaining doses
        from its owner's counter. Pending transfers left without lines are
        deleted. Returns the deleted ids in deletion order, [] when the lot
        does not exist.
        """
        worklist = [(lot_id, 0)]
        visited = set()
        collected: list[tuple[StockLot, int]] = []
        pending_transfer_ids = set()

        while worklist:
            current_id, depth = worklist.pop()
            if current_id in visited:
                continue
            lot = StockLot.objects.select_for_update().filter(pk=current_id).first()
            if lot is None or lot.pk in visited:
                continue
            visited.add(lot.pk)
            collected.append((lot, depth))

            pending_lines = PendingStockTransferLot.objects.filter(lot_id=lot.pk)
            pending_transfer_ids.update(
                pending_lines.values_list('pending_transfer_id', flat=True),
            )
            pending_lines.delete()
            StockReservation.objects.filter(stock_lot_id=lot.pk).delete()

            for child_id in lot.derived_lots.values_list('id', flat=True):
                worklist.append((child_id, depth + 1))

        if not collected:
            return []

        collected.sort(key=lambda item: item[1], reverse=True)
        lot_ids = [lot.pk for lot, _depth in collected]

        StockTransferLot.objects.filter(lot_id__in=lot_ids).delete()

        combos = {}
        for lot, _depth in collected:
            if lot.remaining_quantity > 0:
                AggregateService.modify_stock_quantity(
                    vaccine_id=lot.vaccine_id,
                    owner_type=lot.owner_type,
                    owner_id=lot.owner_id,
                    delta=-lot.remaining_quantity,
                )
            combos[(lot.owner_type, lot.owner_id, lot.vaccine_id)] = lot
            StockLot.objects.filter(pk=lot.pk).delete()

        for owner_type, owner_id, vaccine_id in combos:
            notify_stock_changed(vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id)

        for pending_id in pending_transfer_ids:
            if not PendingStockTransferLot.objects.filter(pending_transfer_id=pending_id).exists():
                PendingStockTransfer.objects.filter(pk=pending_id).delete()
                logger.info('PendingStockTransfer %s deleted: no lots left.', pending_id)

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_DELETE,
            model_name='StockLot',
            object_id=lot_ids[-1],
            old_values={'deleted_lot_ids': [str(pk) for pk in lot_ids]},
        )
        logger.info('Cascade-deleted %d stock lot(s) from %s.', len(lot_ids), lot_ids[-1])
        return lot_ids

    @staticmethod
    def get_expiring_soon(days: int | None = None, owner_type: str | None = None, owner_id=None):
        """VALID lots with doses left that expire within `days`, soonest first."""
        if days is None:
            days = settings.STOCK_EXPIRING_SOON_DAYS
        cutoff = timezone.now() + timedelta(days=days)
        qs = StockLot.objects.filter(
            status=StockLot.Status.VALID,
            remaining_quantity__gt=0,
            expiration__lte=cutoff,
        )
        if owner_type:
            qs = qs.filter(owner_type=owner_type, owner_id=normalize_owner_id(owner_type, owner_id))
        return qs.select_related('vaccine').order_by('expiration')

    @staticmethod
    @transaction.atomic
    def restore_or_recreate_lot(
        *,
        lot_id,
        quantity: int,
        vaccine_id,
        owner_type: str,
        owner_id=None,
        expiration=None,
        status: str | None = None,
        actor=None,
    ) -> dict:
        """
        Give doses back to a sender after a transfer is rejected. The source
        lot gets them back when it still exists; otherwise a new lot is
        created. The sender's counter is incremented, or created if missing.
        """
        qty = ensure_positive_integer(quantity)
        existing = None
        if lot_id:
            existing = StockLot.objects.select_for_update().filter(pk=lot_id).first()

        if existing is not None:
            StockLot.objects.filter(pk=existing.pk).update(
                remaining_quantity=F('remaining_quantity') + qty,
                updated_at=timezone.now(),
            )
            AggregateService.increment_or_create(
                vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id, quantity=qty,
            )
            notify_stock_changed(vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id)
            logger.info('Restored %s dose(s) to StockLot %s.', qty, existing.pk)
            return {'restored': True, 'lot_id': existing.pk}

        lot = LotService.create_lot(
            vaccine_id=vaccine_id,
            owner_type=owner_type,
            owner_id=owner_id,
            quantity=qty,
            expiration=expiration or timezone.now() + DEFAULT_RECREATED_LOT_LIFETIME,
            status=status or StockLot.Status.VALID,
            actor=actor,
        )
        AggregateService.increment_or_create(
            vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id, quantity=qty,
        )
        return {'restored': False, 'lot_id': lot.pk, 'created': True}


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------

class AllocationService:
    """Soonest-expiring-first consumption across an owner's valid lots."""

    @staticmethod
    @transaction.atomic
    def consume_lots(*, vaccine_id, owner_type: str, owner_id=None, quantity) -> list[LotAllocation]:
        """
        Take `quantity` doses from the owner's VALID lots, soonest
        expiration first. Either the full quantity is allocated or
        InsufficientStock is raised with no lot touched.
        """
        qty = ensure_positive_integer(quantity, 'Requested quantity')
        owner_id = normalize_owner_id(owner_type, owner_id)
        _lock_owner_stock(owner_type, owner_id, vaccine_id)

        lots = list(
            _owner_lots(vaccine_id, owner_type, owner_id)
            .select_for_update()
            .filter(status=StockLot.Status.VALID, remaining_quantity__gt=0)
            .order_by('expiration', 'created_at'),
        )
        available = sum(lot.remaining_quantity for lot in lots)
        if available < qty:
            raise InsufficientStock(
                detail=f'Insufficient stock in available lots: available={available}, requested={qty}.',
            )

        remaining = qty
        allocations = []
        for lot in lots:
            if remaining == 0:
                break
            take = min(remaining, lot.remaining_quantity)
            lot.remaining_quantity -= take
            lot.save(update_fields=['remaining_quantity', 'updated_at'])
            allocations.append(
                LotAllocation(lot_id=lot.pk, quantity=take, expiration=lot.expiration, status=lot.status),
            )
            remaining -= take

        notify_stock_changed(vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id)
        logger.info(
            'Consumed %s dose(s) of %s from %s:%s across %d lot(s).',
            qty, vaccine_id, owner_type, owner_id, len(allocations),
        )
        return allocations

    @staticmethod
    @transaction.atomic
    def reduce_stock(*, vaccine_id, owner_type: str, owner_id=None, quantity) -> list[LotAllocation]:
        """
        Take doses out of an owner's stock: check the counter covers the
        request, consume lots soonest expiration first, then decrement the
        counter by the same amount.
        """
        qty = ensure_positive_integer(quantity, 'Requested quantity')
        owner_id = _check_owner(owner_type, owner_id)
        _lock_owner_stock(owner_type, owner_id, vaccine_id)

        available = AggregateService.get_quantity(
            vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id,
        )
        if available < qty:
            raise InsufficientStock(
                detail=f'Insufficient {owner_type.lower()} stock: available={available}, requested={qty}.',
            )

        allocations = AllocationService.consume_lots(
            vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id, quantity=qty,
        )
        AggregateService.modify_stock_quantity(
            vaccine_id=vaccine_id, owner_type=owner_type, owner_id=owner_id, delta=-qty,
        )
        return allocations


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

def _allocation_parts(allocation) -> tuple:
    if isinstance(allocation, dict):
        return allocation['lot_id'], int(allocation['quantity'])
    return allocation.lot_id, int(allocation.quantity)


class TransferService:
    """Completed-transfer audit trail and the pending transfer workflow."""

    @staticmethod
    @transaction.atomic
    def record_transfer(
        *,
        vaccine_id,
        from_type: str,
        from_id,
        to_type: str,
        to_id,
        allocations,
        actor=None,
    ) -> StockTransfer | None:
        """Append one completed transfer with a line per allocation. None if nothing moved."""
        parts = [_allocation_parts(allocation) for allocation in allocations or []]
        if not parts:
            return None

        transfer = StockTransfer(
            vaccine_id=vaccine_id,
            from_type=from_type,
            from_id=normalize_owner_id(from_type, from_id),
            to_type=to_type,
            to_id=normalize_owner_id(to_type, to_id),
            quantity=sum(qty for _lot_id, qty in parts),
        )
        transfer.save()
        StockTransferLot.objects.bulk_create([
            StockTransferLot(transfer=transfer, lot_id=lot_id, quantity=qty)
            for lot_id, qty in parts
        ])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_CREATE,
            model_name='StockTransfer',
            object_id=transfer.pk,
            new_values={
                'vaccine_id': str(vaccine_id),
                'from': f'{from_type}:{transfer.from_id}',
                'to': f'{to_type}:{transfer.to_id}',
                'quantity': transfer.quantity,
                'lots': [{'lot_id': str(lot_id), 'quantity': qty} for lot_id, qty in parts],
            },
        )
        logger.info(
            'StockTransfer %s qty=%s %s:%s -> %s:%s',
            transfer.pk, transfer.quantity, from_type, transfer.from_id, to_type, transfer.to_id,
        )
        return transfer

    @staticmethod
    def _get_pending_for_update(transfer_id) -> PendingStockTransfer:
        pending = PendingStockTransfer.objects.select_for_update().filter(pk=transfer_id).first()
        if pending is None:
            raise TransferNotFound()
        if pending.status != PendingStockTransfer.Status.PENDING:
            raise InvalidTransferState(
                detail=f'Transfer has already been {pending.status.lower()}.',
            )
        return pending

    @staticmethod
    @transaction.atomic
    def send_transfer(
        *,
        vaccine_id,
        from_type: str,
        from_id=None,
        to_type: str,
        to_id,
        quantity,
        actor=None,
    ) -> PendingStockTransfer:
        """
        Take doses from the sender now and park them in a pending transfer.
        The receiver gets an empty PENDING lot that confirm_transfer fills.
        """
        qty = ensure_positive_integer(quantity, 'Transfer quantity')
        from_id = _check_owner(from_type, from_id)
        to_id = _check_owner(to_type, to_id)
        if to_type == OwnerType.NATIONAL:
            raise InvalidOwner(detail='National stock cannot receive transfers.')

        available = AggregateService.get_quantity(
            vaccine_id=vaccine_id, owner_type=from_type, owner_id=from_id,
        )
        if available < qty:
            raise InsufficientStock(
                detail=f'Insufficient {from_type.lower()} stock: available={available}, requested={qty}.',
            )

        allocations = AllocationService.consume_lots(
            vaccine_id=vaccine_id, owner_type=from_type, owner_id=from_id, quantity=qty,
        )
        AggregateService.modify_stock_quantity(
            vaccine_id=vaccine_id, owner_type=from_type, owner_id=from_id, delta=-qty,
        )

        pending = PendingStockTransfer.objects.create(
            vaccine_id=vaccine_id,
            from_type=from_type,
            from_id=from_id,
            to_type=to_type,
            to_id=to_id,
            quantity=qty,
            created_by=actor,
        )
        PendingStockTransferLot.objects.bulk_create([
            PendingStockTransferLot(
                pending_transfer=pending,
                lot_id=allocation.lot_id,
                quantity=allocation.quantity,
                expiration=allocation.expiration,
            )
            for allocation in allocations
        ])

        first = allocations[0]
        LotService.create_lot(
            vaccine_id=vaccine_id,
            owner_type=to_type,
            owner_id=to_id,
            quantity=0,
            expiration=first.expiration,
            source_lot_id=first.lot_id,
            status=StockLot.Status.PENDING,
            pending_transfer_id=pending.pk,
            actor=actor,
        )
        logger.info(
            'PendingStockTransfer %s sent qty=%s %s:%s -> %s:%s',
            pending.pk, qty, from_type, from_id, to_type, to_id,
        )
        return pending

    @staticmethod
    @transaction.atomic
    def confirm_transfer(*, transfer_id, actor=None) -> PendingStockTransfer:
        """
        Receiver acknowledges a pending transfer: the PENDING lot is filled,
        the receiver's counter grows and the movement is recorded.
        """
        pending = TransferService._get_pending_for_update(transfer_id)
        now = timezone.now()
        lines = list(pending.lots.select_related('lot'))
        live_lines = [line for line in lines if line.lot is not None]
        source = live_lines[0].lot if live_lines else None
        destination = pending.destination_lots.select_for_update().first()

        if source is not None:
            expiration = source.expiration
        elif destination is not None:
            expiration = destination.expiration
        else:
            expiration = now + DEFAULT_RECREATED_LOT_LIFETIME

        if source is not None and source.status == StockLot.Status.EXPIRED:
            lot_status = StockLot.Status.EXPIRED
        else:
            lot_status = status_for_expiration(expiration)

        if destination is None:
            LotService.create_lot(
                vaccine_id=pending.vaccine_id,
                owner_type=pending.to_type,
                owner_id=pending.to_id,
                quantity=pending.quantity,
                expiration=expiration,
                source_lot_id=source.pk if source else None,
                status=lot_status,
                actor=actor,
            )
        else:
            destination.quantity = pending.quantity
            destination.remaining_quantity = pending.quantity
            destination.expiration = expiration
            destination.status = lot_status
            destination.source_lot = source
            destination.pending_transfer = None
            destination.save()
            notify_stock_changed(
                vaccine_id=pending.vaccine_id, owner_type=pending.to_type, owner_id=pending.to_id,
            )

        AggregateService.increment_or_create(
            vaccine_id=pending.vaccine_id,
            owner_type=pending.to_type,
            owner_id=pending.to_id,
            quantity=pending.quantity,
        )
        TransferService.record_transfer(
            vaccine_id=pending.vaccine_id,
            from_type=pending.from_type,
            from_id=pending.from_id,
            to_type=pending.to_type,
            to_id=pending.to_id,
            allocations=[
                LotAllocation(
                    lot_id=line.lot.pk,
                    quantity=line.quantity,
                    expiration=line.lot.expiration,
                    status=line.lot.status,
                )
                for line in live_lines
            ],
            actor=actor,
        )

        pending.status = PendingStockTransfer.Status.CONFIRMED
        pending.resolved_at = now
        pending.resolved_by = actor
        pending.save(update_fields=['status', 'resolved_at', 'resolved_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name='PendingStockTransfer',
            object_id=pending.pk,
            old_values={'status': PendingStockTransfer.Status.PENDING},
            new_values={'status': PendingStockTransfer.Status.CONFIRMED, 'lot_status': lot_status},
        )
        logger.info('PendingStockTransfer %s confirmed qty=%s.', pending.pk, pending.quantity)
        return pending

    @staticmethod
    @transaction.atomic
    def reject_transfer(*, transfer_id, actor=None) -> PendingStockTransfer:
        """
        Receiver refuses (or sender cancels) a pending transfer: the empty
        receiver lot is dropped and every line goes back to the sender.
        """
        pending = TransferService._get_pending_for_update(transfer_id)

        for lot_id in list(pending.destination_lots.values_list('id', flat=True)):
            LotService.delete_lot_direct(lot_id)

        for line in pending.lots.all():
            LotService.restore_or_recreate_lot(
                lot_id=line.lot_id,
                quantity=line.quantity,
                vaccine_id=pending.vaccine_id,
                owner_type=pending.from_type,
                owner_id=pending.from_id,
                expiration=line.expiration,
                actor=actor,
            )

        pending.status = PendingStockTransfer.Status.CANCELLED
        pending.resolved_at = timezone.now()
        pending.resolved_by = actor
        pending.save(update_fields=['status', 'resolved_at', 'resolved_by', 'updated_at'])

        AuditService.log(
            actor=actor,
            action=AUDIT_ACTION_STATUS_CHANGE,
            model_name='PendingStockTransfer',
            object_id=pending.pk,
            old_values={'status': PendingStockTransfer.Status.PENDING},
            new_values={'status': PendingStockTransfer.Status.CANCELLED},
        )
        logger.info('PendingStockTransfer %s rejected; %s dose(s) returned.', pending.pk, pending.quantity)
        return pending


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------

class ReservationService:
    """Health-center dose holds against scheduled appointments."""

    @staticmethod
    @transaction.atomic
    def reserve_dose_for_health_center(
        *,
        vaccine_id,
        health_center_id,
        quantity=1,
        appointment_date=None,
    ) -> dict:
        """
        Hold doses from the health center's earliest-expiring valid lot.
        With an appointment date, only lots expiring strictly after that
        calendar day qualify.
        """
        if not health_center_id:
            raise InvalidOwner(detail='Invalid health center for reservation.')
        qty = ensure_positive_integer(quantity, 'Reserved quantity')
        _lock_owner_stock(OwnerType.HEALTHCENTER, health_center_id, vaccine_id)

        stock = HealthCenterStock.objects.select_for_update().filter(
            vaccine_id=vaccine_id, health_center_id=health_center_id,
        ).first()
        available = stock.quantity if stock else 0
        if available < qty:
            raise InsufficientStock(
                detail=f'Insufficient stock for this vaccine: available={available}, requested={qty}.',
            )

        cutoff = start_of_day(appointment_date) if appointment_date else None
        owner_lots = _owner_lots(vaccine_id, OwnerType.HEALTHCENTER, health_center_id)
        valid_lots = owner_lots.filter(status=StockLot.Status.VALID, remaining_quantity__gt=0)
        candidates = valid_lots.filter(expiration__gt=cutoff) if cutoff else valid_lots
        lot = candidates.select_for_update().order_by('expiration', 'created_at').first()

        if lot is None or lot.remaining_quantity < qty:
            if cutoff and valid_lots.filter(expiration__lte=cutoff).exists():
                raise LotWillExpireBeforeAppointment()
            if owner_lots.filter(status=StockLot.Status.EXPIRED, remaining_quantity__gt=0).exists():
                raise AllLotsExpired()
            raise NoAvailableLot()

        stock.quantity = available - qty
        stock.save(update_fields=['quantity', 'updated_at'])
        lot.remaining_quantity -= qty
        lot.save(update_fields=['remaining_quantity', 'updated_at'])

        notify_stock_changed(
            vaccine_id=vaccine_id, owner_type=OwnerType.HEALTHCENTER, owner_id=health_center_id,
        )
        logger.info(
            'Reserved %s dose(s) of %s from lot %s at health center %s.',
            qty, vaccine_id, lot.pk, health_center_id,
        )
        return {'lot_id': lot.pk, 'quantity': qty}

    @staticmethod
    @transaction.atomic
    def release_dose_for_health_center(
        *,
        vaccine_id,
        health_center_id,
        lot_id,
        quantity=1,
    ) -> bool | None:
        """
        Put held doses back on their lot and the health center counter.
        Missing identifiers or an unknown lot are a silent no-op (None).
        Releasing more than the lot's original quantity raises InvalidQuantity.
        """
        if not health_center_id or not lot_id:
            return None
        qty = ensure_positive_integer(quantity, 'Released quantity')

        updated = StockLot.objects.filter(
            pk=lot_id, remaining_quantity__lte=F('quantity') - qty,
        ).update(
            remaining_quantity=F('remaining_quantity') + qty,
            updated_at=timezone.now(),
        )
        if not updated:
            if StockLot.objects.filter(pk=lot_id).exists():
                raise InvalidQuantity(
                    detail=f'Cannot release {qty} dose(s): lot {lot_id} would exceed its original quantity.',
                )
            logger.warning('Release of %s dose(s) skipped: StockLot %s not found.', qty, lot_id)
            return None

        AggregateService.increment_or_create(
            vaccine_id=vaccine_id,
            owner_type=OwnerType.HEALTHCENTER,
            owner_id=health_center_id,
            quantity=qty,
        )
        notify_stock_changed(
            vaccine_id=vaccine_id, owner_type=OwnerType.HEALTHCENTER, owner_id=health_center_id,
        )
        logger.info(
            'Released %s dose(s) of %s to lot %s at health center %s.',
            qty, vaccine_id, lot_id, health_center_id,
        )
        return True

    @staticmethod
    @transaction.atomic
    def reserve_for_schedule(
        *,
        vaccine_id,
        health_center_id,
        schedule_id,
        quantity=1,
        appointment_date=None,
    ) -> StockReservation:
        """Reserve doses and persist the reservation row for an appointment."""
        held = ReservationService.reserve_dose_for_health_center(
            vaccine_id=vaccine_id,
            health_center_id=health_center_id,
            quantity=quantity,
            appointment_date=appointment_date,
        )
        return StockReservation.objects.create(
            stock_lot_id=held['lot_id'],
            schedule_id=schedule_id,
            quantity=held['quantity'],
        )

    @staticmethod
    @transaction.atomic
    def release_reservation(reservation_id) -> bool | None:
        """Release a persisted reservation and delete it. None if it does not exist."""
        reservation = (
            StockReservation.objects
            .select_for_update()
            .select_related('stock_lot')
            .filter(pk=reservation_id)
            .first()
        )
        if reservation is None:
            return None
        lot = reservation.stock_lot
        released = ReservationService.release_dose_for_health_center(
            vaccine_id=lot.vaccine_id,
            health_center_id=lot.owner_id,
            lot_id=lot.pk,
            quantity=reservation.quantity,
        )
        reservation.delete()
        return released
