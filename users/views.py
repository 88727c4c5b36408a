import logging

from rest_framework import status, generics
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.exceptions import TokenError
from django.utils import timezone
from drf_spectacular.utils import extend_schema, OpenApiResponse, OpenApiExample

from .models import UserSession
from .serializers import (
    UserSerializer,
    RegisterSerializer,
    LoginSerializer,
    RefreshTokenSerializer,
    get_tokens_for_user_with_session,
)
from audit.mixins import AuditLogMixin

logger = logging.getLogger(__name__)

TOKEN_EXAMPLE = OpenApiExample(
    "Success Response",
    value={
        "user": {
            "id": "550e8400-e29b-41d4-a716-446655440000",
            "email": "author@example.com",
            "first_name": "Ada",
            "last_name": "Lovelace",
            "roles": ["author"]
        },
        "access": "eyJ0eXAiOiJKV1QiLCJhbGc...",
        "refresh": "eyJ0eXAiOiJKV1QiLCJhbGc..."
    }
)


def get_client_ip(request):
    """Extract client IP from request, honouring X-Forwarded-For."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def _open_session(request, user):
    session = UserSession.objects.create(
        user=user,
        ip_address=get_client_ip(request),
        user_agent=request.META.get('HTTP_USER_AGENT', '')[:500],
    )
    return get_tokens_for_user_with_session(user, session)


@extend_schema(
    tags=["Authentication"],
    summary="Register a new survey author",
    description="""
    Create an account and receive JWT tokens.

    New accounts receive the `author` role, which allows creating surveys;
    owners can publish and analyse their own surveys.
    """,
    request=RegisterSerializer,
    responses={
        201: OpenApiResponse(response=UserSerializer, description="User registered", examples=[TOKEN_EXAMPLE]),
        400: OpenApiResponse(description="Invalid input (duplicate email, weak password)"),
    }
)
class RegisterView(generics.CreateAPIView):
    permission_classes = [AllowAny]
    serializer_class = RegisterSerializer

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()

        tokens = _open_session(request, user)
        logger.info("Registered user %s", user.id)

        return Response({
            'user': UserSerializer(user).data,
            'access': tokens['access'],
            'refresh': tokens['refresh'],
        }, status=status.HTTP_201_CREATED)


@extend_schema(
    tags=["Authentication"],
    summary="Login",
    description="""
    Authenticate with email and password. Each login opens a new session;
    the tokens returned are valid only while that session is active.
    """,
    request=LoginSerializer,
    responses={
        200: OpenApiResponse(description="Login successful", examples=[TOKEN_EXAMPLE]),
        400: OpenApiResponse(description="Invalid credentials"),
    }
)
class LoginView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']

        tokens = _open_session(request, user)

        return Response({
            'user': UserSerializer(user).data,
            'access': tokens['access'],
            'refresh': tokens['refresh'],
        })


@extend_schema(
    tags=["Authentication"],
    summary="Logout",
    description="Deactivate the session the current token belongs to.",
    request=None,
    responses={
        200: OpenApiResponse(description="Logged out"),
        401: OpenApiResponse(description="Not authenticated"),
    }
)
class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        session_id = request.auth.get('session_id') if request.auth else None
        if session_id:
            UserSession.objects.filter(id=session_id, is_active=True).update(
                is_active=False,
                logged_out_at=timezone.now(),
            )

        return Response({'detail': 'Logged out successfully'})


@extend_schema(
    tags=["Authentication"],
    summary="Refresh access token",
    description="Exchange a refresh token for a new access token while its session is active.",
    request=RefreshTokenSerializer,
    responses={
        200: OpenApiResponse(description="Token refreshed"),
        401: OpenApiResponse(description="Invalid or expired refresh token, or session logged out"),
    }
)
class RefreshTokenView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RefreshTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            refresh = RefreshToken(serializer.validated_data['refresh'])
        except TokenError as e:
            return Response({'detail': str(e)}, status=status.HTTP_401_UNAUTHORIZED)

        session_id = refresh.get('session_id')
        if not session_id or not UserSession.objects.filter(id=session_id, is_active=True).exists():
            return Response(
                {'detail': 'Session has been logged out'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        return Response({'access': str(refresh.access_token)})


@extend_schema(
    tags=["User Profile"],
    summary="Get or update the current user's profile",
    description="Only `first_name` and `last_name` are writable. Updates are audit logged.",
    responses={
        200: UserSerializer,
        401: OpenApiResponse(description="Not authenticated"),
    }
)
class UserProfileView(AuditLogMixin, generics.RetrieveUpdateAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = UserSerializer
    http_method_names = ['get', 'patch']

    def get_object(self):
        return self.request.user
