"""
Stock — URL Configuration

@file stock/urls.py
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    ConsumeLotsView,
    PendingStockTransferViewSet,
    StockLevelView,
    StockLotViewSet,
    StockReservationViewSet,
    StockTransferViewSet,
)

app_name = 'stock'

router = DefaultRouter()
router.register('lots', StockLotViewSet, basename='lot')
router.register('transfers', StockTransferViewSet, basename='transfer')
router.register('pending-transfers', PendingStockTransferViewSet, basename='pending-transfer')
router.register('reservations', StockReservationViewSet, basename='reservation')

urlpatterns = [
    path('levels/', StockLevelView.as_view(), name='stock-level'),
    path('consume/', ConsumeLotsView.as_view(), name='consume'),
    path('', include(router.urls)),
]
