"""
Stock — Django Admin Configuration

Lots with expiration color coding, the four aggregate counters, and
read-only views of completed and pending transfers. Lot deletion from
the admin goes through the cascade service so counters stay in step.

@file stock/admin.py
"""

import math

from django.contrib import admin
from django.utils.html import format_html
from django.utils.translation import gettext_lazy as _

from .models import (
    DistrictStock,
    HealthCenterStock,
    NationalStock,
    PendingStockTransfer,
    PendingStockTransferLot,
    RegionalStock,
    StockLot,
    StockReservation,
    StockTransfer,
    StockTransferLot,
)
from .services import LotService

BADGE_HTML = (
    '<span style="background:{};color:#fff;padding:2px 8px;'
    'border-radius:4px;font-size:11px;font-weight:600;">{}</span>'
)


def render_expiration_badge(obj):
    """Shared helper for expiration color coding."""
    if not obj.pk or obj.expiration is None:
        return '—'
    days = math.floor(obj.days_to_expiry)
    if days < 0:
        color, label = '#dc2626', f'EXPIRED ({abs(days)}d ago)'
    elif days <= 7:
        color, label = '#ef4444', f'{days}d left'
    elif days <= 30:
        color, label = '#f97316', f'{days}d left'
    elif days <= 90:
        color, label = '#eab308', f'{days}d left'
    else:
        color, label = '#22c55e', f'{days}d left'
    return format_html(BADGE_HTML, color, label)


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

class StockReservationInline(admin.TabularInline):
    model = StockReservation
    extra = 0
    can_delete = False
    readonly_fields = ('schedule_id', 'quantity', 'created_at')
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.action(description=_('Refresh expired lots'))
def refresh_expired(modeladmin, request, queryset):
    expired = LotService.refresh_expired_lots()
    modeladmin.message_user(request, f'{len(expired)} lot(s) marked as expired.')


@admin.register(StockLot)
class StockLotAdmin(admin.ModelAdmin):
    list_display = (
        'id', 'vaccine', 'owner_type', 'owner_id',
        'remaining_quantity', 'quantity', 'expiration',
        'expiration_badge', 'status_badge', 'created_at',
    )
    list_filter = ('status', 'owner_type', 'vaccine')
    search_fields = ('id', 'owner_id', 'vaccine__name')
    readonly_fields = (
        'id', 'vaccine', 'owner_type', 'owner_id', 'quantity',
        'remaining_quantity', 'expiration', 'expiration_badge', 'status',
        'source_lot', 'pending_transfer', 'created_at', 'updated_at',
    )
    list_select_related = ('vaccine',)
    show_full_result_count = False
    list_per_page = 50
    date_hierarchy = 'expiration'
    ordering = ('expiration',)
    actions = [refresh_expired]
    inlines = [StockReservationInline]

    fieldsets = (
        (_('Lot'), {
            'fields': ('id', 'vaccine', 'owner_type', 'owner_id'),
        }),
        (_('Quantity & Expiration'), {
            'fields': ('quantity', 'remaining_quantity', 'expiration', 'expiration_badge', 'status'),
        }),
        (_('Provenance'), {
            'fields': ('source_lot', 'pending_transfer'),
        }),
        (_('Audit'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def has_add_permission(self, request):
        return False

    def delete_model(self, request, obj):
        LotService.delete_lot_cascade(obj.pk, actor=request.user)

    def delete_queryset(self, request, queryset):
        for lot_id in list(queryset.values_list('id', flat=True)):
            LotService.delete_lot_cascade(lot_id, actor=request.user)

    @admin.display(description=_('Expiration'))
    def expiration_badge(self, obj):
        return render_expiration_badge(obj)

    @admin.display(description=_('Status'))
    def status_badge(self, obj):
        colors = {'VALID': '#22c55e', 'PENDING': '#3b82f6', 'EXPIRED': '#dc2626'}
        return format_html(BADGE_HTML, colors.get(obj.status, '#6b7280'), obj.get_status_display())


# ---------------------------------------------------------------------------
# Aggregate counters (read-only; maintained by stock.services)
# ---------------------------------------------------------------------------

class StockAggregateAdmin(admin.ModelAdmin):
    list_filter = ('vaccine',)
    list_select_related = ('vaccine',)
    ordering = ('vaccine__name',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(NationalStock)
class NationalStockAdmin(StockAggregateAdmin):
    list_display = ('vaccine', 'quantity', 'updated_at')


@admin.register(RegionalStock)
class RegionalStockAdmin(StockAggregateAdmin):
    list_display = ('vaccine', 'region_id', 'quantity', 'updated_at')
    search_fields = ('region_id',)


@admin.register(DistrictStock)
class DistrictStockAdmin(StockAggregateAdmin):
    list_display = ('vaccine', 'district_id', 'quantity', 'updated_at')
    search_fields = ('district_id',)


@admin.register(HealthCenterStock)
class HealthCenterStockAdmin(StockAggregateAdmin):
    list_display = ('vaccine', 'health_center_id', 'quantity', 'updated_at')
    search_fields = ('health_center_id',)


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

class StockTransferLotInline(admin.TabularInline):
    model = StockTransferLot
    extra = 0
    can_delete = False
    readonly_fields = ('lot', 'quantity')
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(StockTransfer)
class StockTransferAdmin(admin.ModelAdmin):
    """INSERT ONLY — model save() blocks updates; delete() raises."""

    list_display = ('id', 'vaccine', 'from_type', 'from_id', 'to_type', 'to_id', 'quantity', 'created_at')
    list_filter = ('from_type', 'to_type', 'created_at')
    readonly_fields = ('id', 'vaccine', 'from_type', 'from_id', 'to_type', 'to_id', 'quantity', 'created_at')
    list_select_related = ('vaccine',)
    show_full_result_count = False
    list_per_page = 50
    date_hierarchy = 'created_at'
    ordering = ('-created_at',)
    inlines = [StockTransferLotInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False  # INSERT ONLY — no updates

    def has_delete_permission(self, request, obj=None):
        return False  # INSERT ONLY — no deletes


class PendingStockTransferLotInline(admin.TabularInline):
    model = PendingStockTransferLot
    extra = 0
    can_delete = False
    readonly_fields = ('lot', 'quantity', 'expiration')
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(PendingStockTransfer)
class PendingStockTransferAdmin(admin.ModelAdmin):
    list_display = (
        'id', 'vaccine', 'from_type', 'from_id', 'to_type', 'to_id',
        'quantity', 'status_badge', 'created_at', 'resolved_at',
    )
    list_filter = ('status', 'from_type', 'to_type')
    readonly_fields = (
        'id', 'vaccine', 'from_type', 'from_id', 'to_type', 'to_id', 'quantity',
        'status', 'created_by', 'resolved_by', 'resolved_at', 'created_at', 'updated_at',
    )
    list_select_related = ('vaccine',)
    ordering = ('-created_at',)
    inlines = [PendingStockTransferLotInline]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.display(description=_('Status'))
    def status_badge(self, obj):
        colors = {'PENDING': '#f97316', 'CONFIRMED': '#22c55e', 'CANCELLED': '#6b7280'}
        return format_html(BADGE_HTML, colors.get(obj.status, '#6b7280'), obj.get_status_display())
