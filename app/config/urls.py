"""
Root URL configuration for the chat service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        register/                  - User registration
        token/                     - Obtain JWT pair (also sets the jwt cookie)
        token/refresh/             - Refresh access token
        logout/                    - Clear the jwt cookie
        me/                        - Current user
    /api/v1/chat/                  - Chat endpoints
        groups/                    - Group list/create
        groups/{id}/               - Group update/delete
        groups/{id}/members/       - Add members
        groups/{id}/members/{uid}/ - Remove member
        groups/{id}/admins/        - Promote member
        groups/{id}/leave/         - Leave group
        unread-counts/             - Non-zero unread counters
        pins/                      - List/pin/unpin
        messages/{id}/star/        - Toggle message star
        starred/                   - Starred messages
        chats/star/                - Toggle conversation star
    /api/v1/notifications/         - Notification endpoints
        device-tokens/             - Register/remove push token

WebSocket:
    /ws/chat/                      - Real-time chat (see chat/routing.py)
"""

from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication
    path("auth/", include("authentication.urls")),
    # Chat
    path("chat/", include("chat.urls")),
    # Notifications
    path("notifications/", include("notifications.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# Inline chat images; served by the reverse proxy outside development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Chat Admin"
admin.site.site_title = "Chat Admin Portal"
admin.site.index_title = "Chat administration"
