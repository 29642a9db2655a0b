"""
Core — Audit Service

Writes audit log entries for stock operations and serialises model
instances into JSON-safe snapshots.

@file core/services.py
"""

import logging
from datetime import date, datetime
from typing import Any
from uuid import UUID

from django.forms.models import model_to_dict

from core.models import AuditLog

logger = logging.getLogger('vaxtrack')


class AuditService:
    """Centralised audit logging for every stock write."""

    @staticmethod
    def log(
        *,
        actor,
        action: str,
        model_name: str,
        object_id,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        return AuditLog.objects.create(
            actor=actor,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            old_values=old_values,
            new_values=new_values,
        )

    @staticmethod
    def snapshot(instance, fields=None) -> dict[str, Any]:
        """
        Serialise a model instance to a plain dict suitable for JSON
        storage. Dates are ISO-formatted, UUIDs stringified, related
        objects reduced to their primary keys.
        """
        data = model_to_dict(instance, fields=fields)
        # model_to_dict skips non-editable fields such as the UUID pk
        if fields is None or 'id' in fields:
            data['id'] = instance.pk
        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                cleaned[key] = None
            elif isinstance(value, (date, datetime)):
                cleaned[key] = value.isoformat()
            elif isinstance(value, UUID):
                cleaned[key] = str(value)
            elif hasattr(value, 'pk'):
                cleaned[key] = str(value.pk)
            else:
                cleaned[key] = value
        return cleaned
