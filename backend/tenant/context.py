"""
Tenant context using contextvars for async-safety.

Usage:
    # In middleware
    set_tenant_context(tenant_id=123, slug="acme")

    # In application code
    tenant_id = get_current_tenant_id()

    # Context manager for explicit scoping (tasks, management commands)
    with tenant_context(tenant_id=123, slug="acme"):
        ...
"""
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Optional, NamedTuple


class TenantContext(NamedTuple):
    """Immutable tenant context for a request."""

    tenant_id: int
    slug: str
    is_writable: bool = True


# None means no tenant context (system operations)
_current_tenant: ContextVar[Optional[TenantContext]] = ContextVar(
    "current_tenant",
    default=None,
)


def get_current_tenant() -> Optional[TenantContext]:
    """
    Get the current tenant context.

    Returns None if no tenant context is set (e.g., during system operations
    or before middleware has processed the request).
    """
    return _current_tenant.get()


def get_current_tenant_id() -> Optional[int]:
    ctx = _current_tenant.get()
    return ctx.tenant_id if ctx else None


def set_tenant_context(tenant_id: int, slug: str, is_writable: bool = True) -> None:
    """Called by middleware after JWT authentication and tenant lookup."""
    _current_tenant.set(TenantContext(tenant_id=tenant_id, slug=slug, is_writable=is_writable))


def clear_tenant_context() -> None:
    """Called by middleware in a finally block."""
    _current_tenant.set(None)


@contextmanager
def tenant_context(tenant_id: int, slug: str = "", is_writable: bool = True):
    """
    Scope work to a tenant, restoring the previous context on exit.

    Usage:
        with tenant_context(tenant_id=tenant.id, slug=tenant.slug):
            process_tenant(tenant)
    """
    token = _current_tenant.set(TenantContext(tenant_id=tenant_id, slug=slug, is_writable=is_writable))
    try:
        yield
    finally:
        _current_tenant.reset(token)


@contextmanager
def system_context():
    """Temporarily clear the tenant context for cross-tenant work."""
    token = _current_tenant.set(None)
    try:
        yield
    finally:
        _current_tenant.reset(token)
