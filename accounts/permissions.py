"""
Role-based permissions for the after-sales surfaces.
"""
from rest_framework import permissions


class IsCustomer(permissions.BasePermission):
    """Only customers can submit and view their own after-sales tickets."""

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.is_customer
        )


class IsSalesStaff(permissions.BasePermission):
    """Sales staff and managers review and approve tickets."""

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.is_sales_staff
        )


class IsOperationsStaff(permissions.BasePermission):
    """Operations staff and managers handle receipt and inspection of goods."""

    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.is_operations_staff
        )
