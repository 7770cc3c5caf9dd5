from rest_framework.permissions import BasePermission


class IsStoreMember(BasePermission):
    """
    Permission check for dashboard operators.
    Ensures user is authenticated, active, and attached to a store.
    """
    message = "Your account is not attached to a store."

    def has_permission(self, request, view):
        return (
            request.user.is_authenticated and
            request.user.is_active and
            request.user.store_id is not None
        )

    def has_object_permission(self, request, view, obj):
        return getattr(obj, 'store_id', None) == request.user.store_id
