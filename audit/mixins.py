from django.forms.models import model_to_dict
from .models import AuditLog

# Never written into an audit diff
REDACTED_FIELDS = {'password', 'password_hash'}

RESOURCE_TYPES = {
    'survey': AuditLog.ResourceType.SURVEY,
    'question': AuditLog.ResourceType.QUESTION,
    'questionoption': AuditLog.ResourceType.OPTION,
    'surveypermission': AuditLog.ResourceType.PERMISSION,
    'surveyresponse': AuditLog.ResourceType.RESPONSE,
    'user': AuditLog.ResourceType.USER,
}


def snapshot(instance):
    """Field values of `instance` suitable for diffing, secrets redacted."""
    state = model_to_dict(instance)
    for key in REDACTED_FIELDS & state.keys():
        state[key] = '[set]' if state[key] else None
    return state


def diff_snapshots(before, after):
    changes = {}
    for key, value in after.items():
        if key in before and before[key] != value:
            old_val = str(before[key]) if before[key] is not None else None
            new_val = str(value) if value is not None else None
            changes[key] = {'old': old_val, 'new': new_val}
    return changes


class AuditLogMixin:
    """
    Logs create, update and delete actions of a ViewSet or generic view.
    Assumes the view has `get_object` and `request`.
    """

    def _get_client_ip(self, request):
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')

    def _get_user_agent(self, request):
        return request.META.get('HTTP_USER_AGENT', '')[:500]

    def _log_action(self, action, instance, changes=None):
        user = self.request.user if self.request.user.is_authenticated else None
        model_name = instance._meta.model_name.lower()

        AuditLog.objects.create(
            user=user,
            action=action,
            resource_type=RESOURCE_TYPES.get(model_name, model_name[:20]),
            resource_id=instance.pk,
            changes=changes,
            ip_address=self._get_client_ip(self.request),
            user_agent=self._get_user_agent(self.request)
        )

    def perform_create(self, serializer):
        instance = serializer.save()
        self._log_action(AuditLog.Action.CREATED, instance)

    def perform_update(self, serializer):
        instance = self.get_object()
        before_state = snapshot(instance)

        super().perform_update(serializer)

        instance.refresh_from_db()
        changes = diff_snapshots(before_state, snapshot(instance))
        if changes:
            self._log_action(AuditLog.Action.UPDATED, instance, changes)

    def perform_destroy(self, instance):
        # Log first; the primary key is gone after delete
        self._log_action(AuditLog.Action.DELETED, instance)
        super().perform_destroy(instance)
