"""
Stock — Serializers

Read serializers for lots, transfers and reservations, and plain input
serializers for the service-backed write endpoints.

@file stock/serializers.py
"""

from django.conf import settings
from rest_framework import serializers

from .models import (
    OwnerType,
    PendingStockTransfer,
    PendingStockTransferLot,
    StockLot,
    StockReservation,
    StockTransfer,
    StockTransferLot,
)
from .services import find_next_threshold


# ---------------------------------------------------------------------------
# Lots
# ---------------------------------------------------------------------------

class StockLotReadSerializer(serializers.ModelSerializer):
    vaccine_name = serializers.CharField(source='vaccine.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    days_to_expiry = serializers.SerializerMethodField()
    warning_threshold = serializers.SerializerMethodField()

    class Meta:
        model = StockLot
        fields = [
            'id', 'vaccine', 'vaccine_name',
            'owner_type', 'owner_id',
            'quantity', 'remaining_quantity', 'expiration',
            'status', 'status_display',
            'source_lot', 'pending_transfer',
            'days_to_expiry', 'warning_threshold',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_days_to_expiry(self, obj):
        return round(obj.days_to_expiry, 2)

    def get_warning_threshold(self, obj):
        return find_next_threshold(obj.days_to_expiry, settings.STOCK_EXPIRATION_WARNING_DAYS)


class OwnerInputSerializer(serializers.Serializer):
    owner_type = serializers.ChoiceField(choices=OwnerType.choices)
    owner_id = serializers.UUIDField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs['owner_type'] != OwnerType.NATIONAL and not attrs.get('owner_id'):
            raise serializers.ValidationError({
                'owner_id': 'An owner ID is required for this stock level.',
            })
        return attrs


class StockLotCreateSerializer(OwnerInputSerializer):
    vaccine_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    expiration = serializers.DateTimeField()


class ConsumeLotsSerializer(OwnerInputSerializer):
    vaccine_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class LotAllocationSerializer(serializers.Serializer):
    lot_id = serializers.UUIDField()
    quantity = serializers.IntegerField()
    expiration = serializers.DateTimeField()
    status = serializers.CharField()


# ---------------------------------------------------------------------------
# Completed transfers
# ---------------------------------------------------------------------------

class StockTransferLotSerializer(serializers.ModelSerializer):
    class Meta:
        model = StockTransferLot
        fields = ['lot', 'quantity']
        read_only_fields = fields


class StockTransferReadSerializer(serializers.ModelSerializer):
    vaccine_name = serializers.CharField(source='vaccine.name', read_only=True)
    lots = StockTransferLotSerializer(many=True, read_only=True)

    class Meta:
        model = StockTransfer
        fields = [
            'id', 'vaccine', 'vaccine_name',
            'from_type', 'from_id', 'to_type', 'to_id',
            'quantity', 'lots', 'created_at',
        ]
        read_only_fields = fields


# ---------------------------------------------------------------------------
# Pending transfers
# ---------------------------------------------------------------------------

class PendingStockTransferLotSerializer(serializers.ModelSerializer):
    class Meta:
        model = PendingStockTransferLot
        fields = ['lot', 'quantity', 'expiration']
        read_only_fields = fields


class PendingStockTransferReadSerializer(serializers.ModelSerializer):
    vaccine_name = serializers.CharField(source='vaccine.name', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    lots = PendingStockTransferLotSerializer(many=True, read_only=True)

    class Meta:
        model = PendingStockTransfer
        fields = [
            'id', 'vaccine', 'vaccine_name',
            'from_type', 'from_id', 'to_type', 'to_id',
            'quantity', 'status', 'status_display', 'lots',
            'created_by', 'resolved_by', 'resolved_at',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields


class SendTransferSerializer(serializers.Serializer):
    vaccine_id = serializers.UUIDField()
    from_type = serializers.ChoiceField(choices=OwnerType.choices)
    from_id = serializers.UUIDField(required=False, allow_null=True)
    to_type = serializers.ChoiceField(choices=OwnerType.choices)
    to_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)

    def validate(self, attrs):
        if attrs['from_type'] != OwnerType.NATIONAL and not attrs.get('from_id'):
            raise serializers.ValidationError({
                'from_id': 'A sender ID is required for this stock level.',
            })
        if attrs['to_type'] == OwnerType.NATIONAL:
            raise serializers.ValidationError({
                'to_type': 'National stock cannot receive transfers.',
            })
        return attrs


# ---------------------------------------------------------------------------
# Reservations
# ---------------------------------------------------------------------------

class StockReservationReadSerializer(serializers.ModelSerializer):
    vaccine = serializers.UUIDField(source='stock_lot.vaccine_id', read_only=True)
    health_center_id = serializers.UUIDField(source='stock_lot.owner_id', read_only=True)

    class Meta:
        model = StockReservation
        fields = ['id', 'stock_lot', 'vaccine', 'health_center_id', 'schedule_id', 'quantity', 'created_at']
        read_only_fields = fields


class ReserveDoseSerializer(serializers.Serializer):
    vaccine_id = serializers.UUIDField()
    health_center_id = serializers.UUIDField()
    schedule_id = serializers.UUIDField(allow_null=True, default=None)
    quantity = serializers.IntegerField(min_value=1, default=1)
    appointment_date = serializers.DateTimeField(required=False, allow_null=True)
