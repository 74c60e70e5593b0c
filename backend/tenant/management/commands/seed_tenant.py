"""
Create a tenant together with its first administrator.

Usage:
    python manage.py seed_tenant "Acme Corp" admin@acme.test --password s3cretpass
    python manage.py seed_tenant "Platform" ops@example.test --password s3cretpass --super-admin

This is idempotent on the slug: an existing tenant is reused.
"""
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils.text import slugify

from accounts.models import User
from tenant.models import Tenant


class Command(BaseCommand):
    help = "Create a tenant and its first admin user"

    def add_arguments(self, parser):
        parser.add_argument("name", help="Tenant display name")
        parser.add_argument("email", help="Admin email")
        parser.add_argument("--password", required=True)
        parser.add_argument("--slug", default="")
        parser.add_argument(
            "--super-admin",
            action="store_true",
            help="Create the user as SUPER_ADMIN (platform operator)",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        slug = options["slug"] or slugify(options["name"])
        if not slug:
            raise CommandError("Could not derive a slug from the tenant name")

        tenant, created = Tenant.objects.get_or_create(slug=slug, defaults={"name": options["name"]})
        if created:
            self.stdout.write(self.style.SUCCESS(f"  CREATED tenant: {tenant.name} ({slug})"))
        else:
            self.stdout.write(f"  SKIP tenant: {slug} already exists")

        email = options["email"].lower().strip()
        if User.objects.filter(email=email).exists():
            self.stdout.write(f"  SKIP user: {email} already exists")
            return

        role = User.Role.SUPER_ADMIN if options["super_admin"] else User.Role.ADMIN
        User.objects.create_user(
            email=email,
            password=options["password"],
            tenant=tenant,
            role=role,
            is_staff=options["super_admin"],
        )
        self.stdout.write(self.style.SUCCESS(f"  CREATED user: {email} ({role})"))
