"""
Stock — Views

Thin DRF surface over stock.services: lots, stock levels, FIFO
consumption, completed and pending transfers, and dose reservations.
All business rules live in the services; domain errors are turned into
HTTP responses by core.exceptions.standard_exception_handler.

@file stock/views.py
"""

from django.conf import settings
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import OwnerType, PendingStockTransfer, StockLot, StockReservation, StockTransfer
from .permissions import CanManageStock, CanSweepExpiredLots
from .serializers import (
    ConsumeLotsSerializer,
    LotAllocationSerializer,
    OwnerInputSerializer,
    PendingStockTransferReadSerializer,
    ReserveDoseSerializer,
    SendTransferSerializer,
    StockLotCreateSerializer,
    StockLotReadSerializer,
    StockReservationReadSerializer,
    StockTransferReadSerializer,
)
from .services import (
    AggregateService,
    AllocationService,
    LotService,
    ReservationService,
    TransferService,
)


class StockLotViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """
    Lots across every owner level.

    Create books a delivery (lot + counter increment); destroy deletes the
    lot and every lot derived from it.
    """

    permission_classes = [IsAuthenticated, CanManageStock]
    filterset_fields = ['status', 'owner_type', 'owner_id', 'vaccine']
    search_fields = ['vaccine__name']
    ordering_fields = ['expiration', 'created_at', 'remaining_quantity']
    ordering = ['expiration']

    def get_queryset(self):
        return StockLot.objects.select_related('vaccine')

    def get_serializer_class(self):
        if self.action == 'create':
            return StockLotCreateSerializer
        return StockLotReadSerializer

    def create(self, request, *args, **kwargs):
        ser = StockLotCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        lot = LotService.receive_stock(actor=request.user, **ser.validated_data)
        return Response(
            {'success': True, 'data': StockLotReadSerializer(lot).data},
            status=status.HTTP_201_CREATED,
        )

    def destroy(self, request, *args, **kwargs):
        lot = self.get_object()
        deleted = LotService.delete_lot_cascade(lot.pk, actor=request.user)
        return Response({
            'success': True,
            'data': {'deleted_lot_ids': [str(pk) for pk in deleted]},
        })

    @action(detail=False, methods=['get'], url_path='expiring-soon')
    def expiring_soon(self, request):
        try:
            days = int(request.query_params.get('days', settings.STOCK_EXPIRING_SOON_DAYS))
        except ValueError:
            raise ValidationError({'days': 'Must be an integer.'})
        lots = LotService.get_expiring_soon(
            days=days,
            owner_type=request.query_params.get('owner_type'),
            owner_id=request.query_params.get('owner_id'),
        )
        page = self.paginate_queryset(lots)
        if page is not None:
            ser = StockLotReadSerializer(page, many=True)
            return self.get_paginated_response(ser.data)
        ser = StockLotReadSerializer(lots, many=True)
        return Response({'success': True, 'data': ser.data})

    @action(
        detail=False, methods=['post'], url_path='refresh-expired',
        permission_classes=[IsAuthenticated, CanSweepExpiredLots],
    )
    def refresh_expired(self, request):
        expired = LotService.refresh_expired_lots()
        return Response({
            'success': True,
            'data': {
                'expired_count': len(expired),
                'lot_ids': [str(lot.pk) for lot in expired],
            },
        })


class StockLevelView(APIView):
    """GET the aggregate dose counter of one owner for one vaccine."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        ser = OwnerInputSerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        vaccine_id = request.query_params.get('vaccine_id')
        if not vaccine_id:
            raise ValidationError({'vaccine_id': 'This field is required.'})
        quantity = AggregateService.get_quantity(
            vaccine_id=vaccine_id,
            owner_type=ser.validated_data['owner_type'],
            owner_id=ser.validated_data.get('owner_id'),
        )
        return Response({
            'success': True,
            'data': {
                'vaccine_id': vaccine_id,
                'owner_type': ser.validated_data['owner_type'],
                'owner_id': ser.validated_data.get('owner_id'),
                'quantity': quantity,
            },
        })


class ConsumeLotsView(APIView):
    """POST: take doses from an owner's stock, soonest-expiring lots first."""

    permission_classes = [IsAuthenticated, CanManageStock]

    def post(self, request):
        ser = ConsumeLotsSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        allocations = AllocationService.reduce_stock(**ser.validated_data)
        return Response({
            'success': True,
            'data': LotAllocationSerializer(allocations, many=True).data,
        })


class StockTransferViewSet(viewsets.ReadOnlyModelViewSet):
    """Completed transfers. Insert-only, so read-only here."""

    serializer_class = StockTransferReadSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['vaccine', 'from_type', 'from_id', 'to_type', 'to_id']
    ordering_fields = ['created_at', 'quantity']
    ordering = ['-created_at']

    def get_queryset(self):
        return StockTransfer.objects.select_related('vaccine').prefetch_related('lots')


class PendingStockTransferViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Two-step transfers: create sends (doses leave the sender now), confirm
    or reject resolves them at the receiver.
    """

    permission_classes = [IsAuthenticated, CanManageStock]
    filterset_fields = ['status', 'vaccine', 'from_type', 'from_id', 'to_type', 'to_id']
    ordering_fields = ['created_at', 'quantity']
    ordering = ['-created_at']

    def get_queryset(self):
        return PendingStockTransfer.objects.select_related('vaccine').prefetch_related('lots')

    def get_serializer_class(self):
        if self.action == 'create':
            return SendTransferSerializer
        return PendingStockTransferReadSerializer

    def create(self, request, *args, **kwargs):
        ser = SendTransferSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        pending = TransferService.send_transfer(actor=request.user, **ser.validated_data)
        return Response(
            {'success': True, 'data': PendingStockTransferReadSerializer(pending).data},
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['post'], url_path='confirm')
    def confirm(self, request, pk=None):
        pending = TransferService.confirm_transfer(transfer_id=pk, actor=request.user)
        return Response({
            'success': True,
            'data': PendingStockTransferReadSerializer(pending).data,
        })

    @action(detail=True, methods=['post'], url_path='reject')
    def reject(self, request, pk=None):
        pending = TransferService.reject_transfer(transfer_id=pk, actor=request.user)
        return Response({
            'success': True,
            'data': PendingStockTransferReadSerializer(pending).data,
        })


class StockReservationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    """Health-center dose holds; destroy releases the doses."""

    permission_classes = [IsAuthenticated, CanManageStock]
    filterset_fields = ['schedule_id', 'stock_lot']
    ordering = ['-created_at']

    def get_queryset(self):
        qs = StockReservation.objects.select_related('stock_lot')
        health_center_id = self.request.query_params.get('health_center_id')
        if health_center_id:
            qs = qs.filter(
                stock_lot__owner_type=OwnerType.HEALTHCENTER,
                stock_lot__owner_id=health_center_id,
            )
        return qs

    def get_serializer_class(self):
        if self.action == 'create':
            return ReserveDoseSerializer
        return StockReservationReadSerializer

    def create(self, request, *args, **kwargs):
        ser = ReserveDoseSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        reservation = ReservationService.reserve_for_schedule(**ser.validated_data)
        return Response(
            {'success': True, 'data': StockReservationReadSerializer(reservation).data},
            status=status.HTTP_201_CREATED,
        )

    def destroy(self, request, *args, **kwargs):
        reservation = self.get_object()
        ReservationService.release_reservation(reservation.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)
