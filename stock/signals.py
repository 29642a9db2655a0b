"""
Stock — Signals

stock_changed is sent after every operation that mutates lots for one
owner and vaccine, with keyword arguments vaccine_id, owner_type and
owner_id. Nothing listens by default; an expiration summary or cache can
connect a receiver without touching the services.

@file stock/signals.py
"""

from django.dispatch import Signal

from .models import StockLot, normalize_owner_id

stock_changed = Signal()


def notify_stock_changed(*, vaccine_id, owner_type, owner_id) -> None:
    stock_changed.send(
        sender=StockLot,
        vaccine_id=vaccine_id,
        owner_type=owner_type,
        owner_id=normalize_owner_id(owner_type, owner_id),
    )
