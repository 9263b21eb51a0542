"""
Authentication API views.

URL: /api/v1/auth/

    register/        POST  Create an account
    token/           POST  Obtain JWT pair (also sets the ``jwt`` cookie)
    token/refresh/   POST  Refresh the access token
    logout/          POST  Clear the ``jwt`` cookie
    me/              GET   Current user with presence fields

The ``jwt`` cookie lets browser clients open the chat WebSocket without
putting the token in the URL; see chat/middleware.py for the accepted
credential sources.
"""

from django.conf import settings
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from authentication.serializers import RegisterSerializer, UserSerializer


def _set_jwt_cookie(response, access_token: str) -> None:
    lifetime = settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"]
    response.set_cookie(
        settings.JWT_COOKIE_NAME,
        access_token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=not settings.DEBUG,
        samesite="Lax",
    )


class RegisterView(APIView):
    """Create an email/password account and return the user."""

    permission_classes = [AllowAny]

    @extend_schema(
        summary="Register",
        tags=["Auth"],
        request=RegisterSerializer,
        responses={201: UserSerializer},
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class CookieTokenObtainPairView(TokenObtainPairView):
    """
    simplejwt token endpoint that also sets the access token as a cookie.

    The JSON body is unchanged, so bearer-token clients keep working.
    """

    @extend_schema(summary="Obtain JWT pair", tags=["Auth"])
    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        if response.status_code == status.HTTP_200_OK:
            _set_jwt_cookie(response, response.data["access"])
        return response


class LogoutView(APIView):
    """Clear the ``jwt`` cookie."""

    permission_classes = [AllowAny]

    @extend_schema(summary="Logout", tags=["Auth"], request=None, responses={204: None})
    def post(self, request):
        response = Response(status=status.HTTP_204_NO_CONTENT)
        response.delete_cookie(settings.JWT_COOKIE_NAME)
        return response


class MeView(APIView):
    """Return the authenticated user."""

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Current user", tags=["Auth"], responses={200: UserSerializer})
    def get(self, request):
        return Response(UserSerializer(request.user).data)
