"""
Smoke-test every request in a Postman collection.

Usage:
    python manage.py check_api_health docs/postman/b2b-api.postman_collection.json
    python manage.py check_api_health collection.json --environment env.json \
        --var baseUrl=http://localhost:8000 --max-latency-ms 1500

Exits with status 1 when any request fails or exceeds the latency budget.
"""
from django.core.management.base import BaseCommand, CommandError

from ops.api_health import check_collection, load_json


class Command(BaseCommand):
    help = "Call every request of a Postman collection and report status and latency"

    def add_arguments(self, parser):
        parser.add_argument("collection", help="Path to a Postman v2.1 collection")
        parser.add_argument("--environment", help="Path to a Postman environment file")
        parser.add_argument(
            "--var",
            action="append",
            default=[],
            help="Variable override as key=value (repeatable)",
        )
        parser.add_argument("--timeout", type=float, default=10.0, help="Per-request timeout in seconds")
        parser.add_argument("--concurrency", type=int, default=10)
        parser.add_argument("--max-latency-ms", type=float, default=2000.0)

    def handle(self, *args, **options):
        overrides = {}
        for item in options["var"]:
            if "=" not in item:
                raise CommandError(f"Invalid --var '{item}', expected key=value")
            key, value = item.split("=", 1)
            overrides[key.strip()] = value

        try:
            collection = load_json(options["collection"])
            environment = load_json(options["environment"]) if options["environment"] else None
        except (OSError, ValueError) as e:
            raise CommandError(f"Could not read collection: {e}")

        results = check_collection(
            collection,
            environment,
            overrides,
            timeout_seconds=options["timeout"],
            concurrency=options["concurrency"],
        )

        max_latency = options["max_latency_ms"]
        failures = 0
        for result in results:
            slow = result.duration_ms > max_latency
            line = f"  {result.method:6} {result.status or '---'} {result.duration_ms:>8.1f}ms  {result.name}"
            if not result.ok:
                failures += 1
                self.stdout.write(self.style.ERROR(f"{line}  [{result.error}]"))
            elif slow:
                failures += 1
                self.stdout.write(self.style.WARNING(f"{line}  [slow]"))
            else:
                self.stdout.write(self.style.SUCCESS(line))

        self.stdout.write(f"\n{len(results) - failures}/{len(results)} requests healthy")
        if failures:
            raise CommandError(f"{failures} request(s) failed the health check", returncode=1)
