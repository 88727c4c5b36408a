"""
DRF permission classes for survey RBAC.

A user may act on a survey either through a role granting the relevant
codename, or by being the survey's creator.
"""
from typing import Optional
from rest_framework import permissions
from .models import UserRole


def user_has_permission(user, permission_codename):
    """True if `user` holds `permission_codename` through any role."""
    if not user or not user.is_authenticated:
        return False

    if user.is_superuser:
        return True

    return UserRole.objects.filter(
        user=user,
        role__role_permissions__permission__codename=permission_codename
    ).exists()


def owning_survey(obj):
    """Walk from a question, option, permission or response up to its survey."""
    if hasattr(obj, 'question'):
        obj = obj.question
    return getattr(obj, 'survey', obj)


def is_survey_owner(user, obj):
    owner_id = getattr(owning_survey(obj), 'created_by_id', None)
    return owner_id is not None and owner_id == getattr(user, 'id', None)


class HasRBACPermission(permissions.BasePermission):
    """
    Base class: subclasses set `permission_codename`.

    With `owner_allowed`, the survey's creator passes the object-level
    check even without the role permission.
    """
    permission_codename: Optional[str] = None
    owner_allowed = False

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        if self.owner_allowed:
            # Decided per object in has_object_permission
            return True
        return user_has_permission(request.user, self.permission_codename)

    def has_object_permission(self, request, view, obj):
        if user_has_permission(request.user, self.permission_codename):
            return True
        return self.owner_allowed and is_survey_owner(request.user, obj)


class CanCreateSurvey(HasRBACPermission):
    permission_codename = 'create_survey'


class CanEditSurvey(HasRBACPermission):
    permission_codename = 'edit_survey'
    owner_allowed = True


class CanDeleteSurvey(HasRBACPermission):
    permission_codename = 'delete_survey'
    owner_allowed = True


class CanPublishSurvey(HasRBACPermission):
    permission_codename = 'publish_survey'
    owner_allowed = True


class CanManageAccess(HasRBACPermission):
    """Change a survey's access policy (type, allowlist, password, window)."""
    permission_codename = 'manage_access'
    owner_allowed = True


class CanViewResponses(HasRBACPermission):
    permission_codename = 'view_responses'
    owner_allowed = True


class CanViewAnalytics(HasRBACPermission):
    permission_codename = 'view_analytics'
    owner_allowed = True
