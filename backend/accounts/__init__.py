# accounts/__init__.py
"""
Accounts app - authentication, users, organizations and authorization.

- User: email-login user bound to a tenant with a role
- Organization: per-tenant business unit tree
- ActorContext: authorization context passed to every command
"""
