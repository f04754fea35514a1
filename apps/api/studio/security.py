from __future__ import annotations

import base64
import hmac

from cryptography.fernet import Fernet, InvalidToken

from studio.config import settings


class IntegrationSecretDecryptError(RuntimeError):
  pass


def _fernet() -> Fernet:
  key = settings.fernet_key
  # accept raw bytes/base64 for ergonomics
  try:
    base64.urlsafe_b64decode(key.encode("utf-8"))
    return Fernet(key.encode("utf-8"))
  except Exception:
    b = base64.urlsafe_b64encode(key.encode("utf-8").ljust(32, b"\0")[:32])
    return Fernet(b)


def encrypt_secret(value: str) -> str:
  return _fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(value: str) -> str:
  return _fernet().decrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_integration_secret(value: str) -> str:
  try:
    return decrypt_secret(value)
  except InvalidToken as exc:
    raise IntegrationSecretDecryptError(
      "Monday.com token cannot be decrypted with the current key; save the token again."
    ) from exc


def secrets_match(provided: str | None, expected: str | None) -> bool:
  if not provided or not expected:
    return False
  return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
