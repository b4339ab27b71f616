from rest_framework.permissions import BasePermission


class IsRequester(BasePermission):
    """
    Allows access only to users with role == 'requester'.
    Keeps role check logic centralized.
    """
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == "requester"


class IsOperator(BasePermission):
    """Allows access only to users with role == 'operator' and a profile."""
    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == "operator" and hasattr(user, "operator_profile")
