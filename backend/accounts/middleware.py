"""
Tenant middleware.

Enforces tenant-bound JWT tokens and sets the tenant context for the
duration of the request.

STRICT ALLOWLIST PATTERN:
- If token has tenant_id -> lookup tenant -> enforce status -> set context -> proceed
- If token has NO tenant_id -> allow ONLY NO_TENANT_ALLOWLIST -> deny else
"""
import logging

from django.http import JsonResponse
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework.exceptions import AuthenticationFailed

from tenant.context import set_tenant_context, clear_tenant_context
from tenant.models import Tenant

logger = logging.getLogger(__name__)

SAFE_METHODS = ("GET", "HEAD", "OPTIONS")

# Per-process tenant status cache, invalidated by tenant commands
_tenant_cache: dict = {}


def invalidate_tenant_cache(tenant_id: int = None) -> None:
    if tenant_id is None:
        _tenant_cache.clear()
    else:
        _tenant_cache.pop(tenant_id, None)


class TenantMiddleware:
    """
    Flow:
    1. Public path -> pass through
    2. Authenticate JWT and read the tenant_id claim
    3. Look up the tenant (cached per process) and enforce its status
    4. Set tenant context, process request, clear context in finally
    """

    PUBLIC_PATHS = (
        "/api/auth/register/",
        "/api/auth/login/",
        "/api/auth/refresh/",
        "/admin/",  # Django admin (has its own auth)
        "/static/",
        "/_health/",  # Health checks (Kubernetes probes)
        "/_metrics/",  # Prometheus metrics
    )

    # Authenticated, but no tenant_id claim required
    NO_TENANT_ALLOWLIST = (
        ("GET", "/api/auth/me/"),
        ("POST", "/api/auth/logout/"),
    )

    def __init__(self, get_response):
        self.get_response = get_response
        self.jwt_auth = JWTAuthentication()

    def __call__(self, request):
        if self._is_public_path(request.path):
            return self.get_response(request)

        jwt_user = None
        tenant_id = None

        try:
            result = self.jwt_auth.authenticate(request)
        except (InvalidToken, TokenError, AuthenticationFailed):
            # Let DRF authentication produce the 401
            result = None

        if result:
            jwt_user, token = result
            raw_tenant_id = token.get("tenant_id")
            if raw_tenant_id not in (None, "", "None"):
                tenant_id = int(raw_tenant_id)

        if jwt_user is not None and tenant_id is not None:
            tenant_info = self._get_tenant_info(tenant_id)

            if tenant_info is None or not tenant_info["is_accessible"]:
                return JsonResponse(
                    {
                        "detail": "tenant_inactive",
                        "message": "This tenant is inactive or suspended.",
                    },
                    status=403,
                )

            if not tenant_info["is_writable"] and request.method not in SAFE_METHODS:
                return JsonResponse(
                    {
                        "detail": "tenant_read_only",
                        "message": "This tenant is currently read-only.",
                    },
                    status=503,
                )

            set_tenant_context(
                tenant_id=tenant_id,
                slug=tenant_info["slug"],
                is_writable=tenant_info["is_writable"],
            )
            try:
                return self.get_response(request)
            finally:
                clear_tenant_context()

        if jwt_user is not None:
            if self._is_no_tenant_allowed(request.method, request.path):
                try:
                    return self.get_response(request)
                finally:
                    clear_tenant_context()
            return JsonResponse(
                {
                    "detail": "no_tenant_context",
                    "message": "Your token has no tenant context.",
                    "hint": "Log in again with an account that belongs to a tenant.",
                },
                status=403,
            )

        # Not authenticated - let DRF handle (401)
        try:
            return self.get_response(request)
        finally:
            clear_tenant_context()

    def _get_tenant_info(self, tenant_id: int):
        if tenant_id in _tenant_cache:
            return _tenant_cache[tenant_id]

        tenant = Tenant.objects.filter(pk=tenant_id).first()
        if tenant is None:
            logger.warning("Token references unknown tenant", extra={"tenant_id": tenant_id})
            return None

        info = {
            "slug": tenant.slug,
            "is_accessible": tenant.is_accessible,
            "is_writable": tenant.is_writable,
        }
        _tenant_cache[tenant_id] = info
        return info

    def _is_public_path(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.PUBLIC_PATHS)

    def _is_no_tenant_allowed(self, method: str, path: str) -> bool:
        return any(method == m and path.startswith(p) for m, p in self.NO_TENANT_ALLOWLIST)

