"""
Vaccines — Models

The vaccine catalogue. Every stock lot, aggregate counter and transfer
points at one Vaccine row.

@file vaccines/models.py
"""

from django.db import models
from django.utils.translation import gettext_lazy as _

from core.models import BaseModel


class Vaccine(BaseModel):
    """
    A vaccine administered by the programme.

    doses_required is the number of doses in the full schedule; stock is
    always counted in single doses.
    """

    name = models.CharField(_('name'), max_length=255)
    description = models.TextField(_('description'), blank=True)
    doses_required = models.PositiveSmallIntegerField(
        _('doses required'), default=1,
        help_text=_('Number of doses in the complete schedule'),
    )
    is_active = models.BooleanField(_('active'), default=True, db_index=True)

    class Meta:
        verbose_name = _('vaccine')
        verbose_name_plural = _('vaccines')
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['name'], name='unique_vaccine_name'),
            models.CheckConstraint(
                condition=models.Q(doses_required__gt=0),
                name='vaccine_positive_doses_required',
            ),
        ]

    def __str__(self):
        return self.name
