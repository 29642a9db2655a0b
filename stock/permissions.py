"""
Stock — Permissions

Reads are open to authenticated users; any write to lots, transfers or
reservations requires the stock.change_stocklot model permission.

@file stock/permissions.py
"""

from rest_framework.permissions import BasePermission


class CanManageStock(BasePermission):

    def has_permission(self, request, view):
        if request.method in ('GET', 'HEAD', 'OPTIONS'):
            return True
        user = request.user
        if not user or not user.is_authenticated:
            return False
        if user.is_superuser:
            return True
        return user.has_perm('stock.change_stocklot')


class CanSweepExpiredLots(BasePermission):
    """Only staff may trigger the expiry sweep by hand."""

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return user.is_superuser or user.is_staff
