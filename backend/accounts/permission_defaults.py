# accounts/permission_defaults.py
"""
Role -> permission code mapping (the ability table).

SUPER_ADMIN is not listed: it holds every code implicitly (see ActorContext.has).
"""

_VIEWER = {
    "tenants.view",
    "users.view",
    "organizations.view",

    "catalog.view",

    "orders.view",
    "payments.view",
    "promotions.view",
    "discounts.view",

    "contracts.view",
    "quotes.view",
    "approvals.view",

    "notifications.use",
}

_USER = _VIEWER | {
    "cart.use",
    "orders.create",
    "orders.cancel",
    "payments.create",

    "contracts.submit",
    "quotes.create",
    "quotes.edit",
    "quotes.submit",
    "quotes.send",
    "quotes.respond",
}

_MANAGER = _USER | {
    "orders.manage",

    "contracts.create",
    "contracts.edit",
    "contracts.approve",
    "quotes.delete",
    "quotes.approve",
    "quotes.convert",

    "approvals.manage",
    "integrations.view",
    "audit.view",
}

_ADMIN = _MANAGER | {
    "tenants.manage_settings",
    "users.manage",
    "organizations.manage",

    "catalog.manage",
    "catalog.grant_access",

    "orders.refund",
    "payments.manage",
    "promotions.manage",
    "discounts.manage",

    "contracts.terminate",

    "integrations.manage",
}

ROLE_DEFAULTS = {
    "ADMIN": _ADMIN,
    "MANAGER": _MANAGER,
    "USER": _USER,
    "VIEWER": _VIEWER,
}

# Granted to SUPER_ADMIN only
PLATFORM_PERMISSIONS = {
    "tenants.manage",
    "integrations.operate",
}


def permissions_for_role(role: str) -> frozenset[str]:
    return frozenset(ROLE_DEFAULTS.get(role, set()))


def all_permission_codes() -> set[str]:
    codes: set[str] = set(PLATFORM_PERMISSIONS)
    for s in ROLE_DEFAULTS.values():
        codes |= set(s)
    return codes
