from rest_framework.permissions import BasePermission


class OwnerScopedPermission(BasePermission):
    """
    Access granted once the token auth has resolved an owner id.
    Object-level ownership is enforced by the job registry (foreign ids -> 404).
    """
    def has_permission(self, request, view):
        return bool(getattr(request.user, "owner_id", None))


class IsStaffToken(BasePermission):
    """Operator endpoints: Firebase custom claim admin=true."""
    def has_permission(self, request, view):
        return bool(getattr(request.user, "owner_id", None) and getattr(request.user, "is_staff", False))
