"""Document number allocation (orders, quotes, contracts, payments)."""
from django.db import IntegrityError, transaction
from django.utils import timezone

from tenant.models import TenantSequence


def next_sequence(tenant, name: str) -> int:
    """
    Allocate the next sequence value for a tenant/name pair.
    Uses select_for_update to avoid concurrent duplicates.
    """
    with transaction.atomic():
        try:
            seq = TenantSequence.objects.select_for_update().get(tenant=tenant, name=name)
        except TenantSequence.DoesNotExist:
            try:
                with transaction.atomic():
                    seq = TenantSequence.objects.create(tenant=tenant, name=name, next_value=1)
            except IntegrityError:
                seq = TenantSequence.objects.select_for_update().get(tenant=tenant, name=name)

        value = seq.next_value
        seq.next_value = value + 1
        seq.save(update_fields=["next_value"])
        return value


def next_document_number(tenant, prefix: str, width: int) -> str:
    """``{prefix}-{year}-{seq}`` with the sequence restarting every year."""
    year = timezone.now().year
    value = next_sequence(tenant, f"{prefix.lower()}:{year}")
    return f"{prefix}-{year}-{value:0{width}d}"
