# integrations/vault.py
"""
Credential vault.

Secrets are JSON documents encrypted with AES-256-GCM. Each entry gets
its own key, derived with scrypt from the master key and a random salt
stored in ``key_id``. The tenant id is bound as associated data, so a
row copied to another tenant will not decrypt.
"""
import base64
import hashlib
import json
import logging
import os
from datetime import timedelta

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from django.conf import settings
from django.db.models import F
from django.utils import timezone

from integrations.models import CredentialVault

logger = logging.getLogger(__name__)

SALT_BYTES = 16
NONCE_BYTES = 12


class VaultError(Exception):
    pass


class CredentialAccessDenied(VaultError):
    pass


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"))


def master_key() -> bytes:
    configured = getattr(settings, "CREDENTIAL_VAULT_MASTER_KEY", "")
    if configured:
        key = _unb64(configured)
        if len(key) != 32:
            raise VaultError("CREDENTIAL_VAULT_MASTER_KEY must decode to 32 bytes.")
        return key
    return hashlib.sha256(settings.SECRET_KEY.encode("utf-8")).digest()


def derive_key(salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=2 ** 14, r=8, p=1)
    return kdf.derive(master_key())


def _aad(tenant_id) -> bytes:
    return str(tenant_id).encode("utf-8")


def encrypt(tenant_id, data: dict) -> dict:
    """Return the encrypted_data/key_id/nonce fields for a CredentialVault row."""
    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    plaintext = json.dumps(data, sort_keys=True).encode("utf-8")
    ciphertext = AESGCM(derive_key(salt)).encrypt(nonce, plaintext, _aad(tenant_id))
    return {"encrypted_data": _b64(ciphertext), "key_id": _b64(salt), "nonce": _b64(nonce)}


def decrypt(entry: CredentialVault) -> dict:
    try:
        key = derive_key(_unb64(entry.key_id))
        plaintext = AESGCM(key).decrypt(_unb64(entry.nonce), _unb64(entry.encrypted_data), _aad(entry.tenant_id))
    except (InvalidTag, ValueError) as exc:
        logger.error("Credential decryption failed", extra={"credential_id": str(entry.public_id)})
        raise VaultError("Credential could not be decrypted.") from exc
    return json.loads(plaintext.decode("utf-8"))


def check_access(entry: CredentialVault, connector_code: str = None, user=None) -> None:
    """Raise CredentialAccessDenied unless the entry may be read right now."""
    if entry.is_expired:
        raise CredentialAccessDenied("Credential has expired.")

    policy = entry.access_policy or {}
    allowed_connectors = policy.get("allowed_connectors") or []
    if allowed_connectors and connector_code not in allowed_connectors:
        raise CredentialAccessDenied(f"Connector '{connector_code}' may not use this credential.")

    allowed_users = [str(u) for u in policy.get("allowed_users") or []]
    if allowed_users and (user is None or str(user.public_id) not in allowed_users):
        raise CredentialAccessDenied("User may not access this credential.")

    max_count = policy.get("max_access_count")
    if max_count is not None and entry.access_count >= int(max_count):
        raise CredentialAccessDenied("Credential access limit reached.")


def reveal(entry: CredentialVault, connector_code: str = None, user=None) -> dict:
    """Decrypt after enforcing the access policy, recording the access."""
    check_access(entry, connector_code=connector_code, user=user)
    data = decrypt(entry)
    now = timezone.now()
    CredentialVault.objects.filter(pk=entry.pk).update(access_count=F("access_count") + 1, last_accessed_at=now)
    entry.access_count += 1
    entry.last_accessed_at = now
    return data


def needs_rotation(entry: CredentialVault, now=None) -> bool:
    policy = entry.rotation_policy or {}
    if not policy.get("enabled") or not policy.get("interval_days"):
        return False
    now = now or timezone.now()
    last = entry.rotated_at or entry.created_at
    return last + timedelta(days=int(policy["interval_days"])) <= now


def credentials_needing_rotation(tenant=None, now=None) -> list[CredentialVault]:
    qs = CredentialVault.objects.filter(rotation_policy__enabled=True)
    if tenant is not None:
        qs = qs.filter(tenant=tenant)
    return [entry for entry in qs.select_related("tenant") if needs_rotation(entry, now)]


def expiring_credentials(tenant, days: int = 7, now=None):
    now = now or timezone.now()
    return CredentialVault.objects.filter(
        tenant=tenant,
        expires_at__isnull=False,
        expires_at__gt=now,
        expires_at__lte=now + timedelta(days=days),
    ).order_by("expires_at")
