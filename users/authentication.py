from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from django.utils import timezone


class SessionJWTAuthentication(JWTAuthentication):
    """
    JWT authentication bound to a UserSession.

    Tokens must carry a `session_id` claim whose session is still active;
    a logged-out session rejects every token issued for it.
    """

    def get_validated_token(self, raw_token):
        validated_token = super().get_validated_token(raw_token)

        session_id = validated_token.get('session_id')
        if not session_id:
            raise InvalidToken('Token missing session_id')

        from users.models import UserSession
        updated = UserSession.objects.filter(id=session_id, is_active=True).update(
            last_activity=timezone.now()
        )
        if not updated:
            if UserSession.objects.filter(id=session_id).exists():
                raise InvalidToken('Session has been logged out')
            raise InvalidToken('Session not found')

        return validated_token
