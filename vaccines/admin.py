"""
Vaccines — Django Admin Configuration

Vaccine catalogue admin with an inline view of the lots held for each
vaccine.

@file vaccines/admin.py
"""

from django.contrib import admin
from django.db.models import Sum
from django.utils.translation import gettext_lazy as _

from stock.admin import render_expiration_badge
from stock.models import StockLot

from .models import Vaccine


class StockLotInline(admin.TabularInline):
    model = StockLot
    fk_name = 'vaccine'
    extra = 0
    can_delete = False
    readonly_fields = (
        'owner_type', 'owner_id', 'quantity', 'remaining_quantity',
        'expiration', 'expiration_badge', 'status',
    )
    fields = readonly_fields
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False

    @admin.display(description=_('Expiration'))
    def expiration_badge(self, obj):
        return render_expiration_badge(obj)


@admin.register(Vaccine)
class VaccineAdmin(admin.ModelAdmin):
    list_display = ('name', 'doses_required', 'is_active', 'doses_in_stock', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name',)
    readonly_fields = ('id', 'created_at', 'updated_at', 'created_by', 'updated_by')
    ordering = ('name',)
    inlines = [StockLotInline]

    fieldsets = (
        (_('Identification'), {
            'fields': ('id', 'name', 'description'),
        }),
        (_('Schedule'), {
            'fields': ('doses_required', 'is_active'),
        }),
        (_('Audit'), {
            'fields': ('created_at', 'updated_at', 'created_by', 'updated_by'),
            'classes': ('collapse',),
        }),
    )

    @admin.display(description=_('Doses in valid lots'))
    def doses_in_stock(self, obj):
        total = obj.stock_lots.filter(
            status=StockLot.Status.VALID,
        ).aggregate(total=Sum('remaining_quantity'))['total']
        return total or 0
