"""
OpenAPI schema extensions for drf-spectacular.
"""
from drf_spectacular.extensions import OpenApiAuthenticationExtension


class SessionJWTAuthenticationScheme(OpenApiAuthenticationExtension):
    """Documents SessionJWTAuthentication as a bearer JWT scheme."""
    target_class = "users.authentication.SessionJWTAuthentication"
    name = "jwtAuth"

    def get_security_definition(self, auto_schema):
        return {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "JWT access token from /api/v1/auth/login/. "
                           "Optional on public survey endpoints, where it identifies the respondent.",
        }
