# accounts/throttles.py
"""
Rate limits for the anonymous auth endpoints.

Rates come from REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"]:
- registration: per client IP
- login: per client IP and submitted email
"""

from rest_framework.throttling import AnonRateThrottle


class RegistrationThrottle(AnonRateThrottle):
    """Each registration creates a tenant, so limit sign-ups per IP."""
    scope = "registration"


class LoginThrottle(AnonRateThrottle):
    scope = "login"

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            return None
        email = str(request.data.get("email", "")).strip().lower()
        return self.cache_format % {
            "scope": self.scope,
            "ident": f"{self.get_ident(request)}:{email}",
        }
