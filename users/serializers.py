import logging
from rest_framework import serializers
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from .models import User, Role

logger = logging.getLogger(__name__)


class UserSerializer(serializers.ModelSerializer):
    """Profile of the signed-in user, with role names."""
    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'is_active', 'created_at', 'roles']
        read_only_fields = ['id', 'email', 'is_active', 'created_at', 'roles']

    def get_roles(self, obj) -> list[str]:
        return list(obj.user_roles.values_list('role__name', flat=True))


class RegisterSerializer(serializers.ModelSerializer):
    """
    Registers a survey author. New accounts get the `author` role: they can
    create surveys and, as owner, manage and analyse them.
    """
    password = serializers.CharField(write_only=True, validators=[validate_password])

    class Meta:
        model = User
        fields = ['email', 'password', 'first_name', 'last_name']

    def create(self, validated_data):
        user = User.objects.create_user(**validated_data)
        try:
            user.assign_role('author')
        except Role.DoesNotExist:
            # Roles not seeded yet; an admin can assign one later
            logger.warning("Role 'author' missing; %s registered without a role", user.email)
        return user


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        user = authenticate(username=attrs.get('email'), password=attrs.get('password'))
        if not user:
            raise serializers.ValidationError('Invalid email or password')
        if not user.is_active:
            raise serializers.ValidationError('User account is disabled')

        attrs['user'] = user
        return attrs


class RefreshTokenSerializer(serializers.Serializer):
    refresh = serializers.CharField()


def get_tokens_for_user_with_session(user, session):
    """Issue a refresh/access pair carrying the login session id."""
    refresh = RefreshToken.for_user(user)
    refresh['session_id'] = str(session.id)

    return {
        'refresh': str(refresh),
        'access': str(refresh.access_token),
    }
