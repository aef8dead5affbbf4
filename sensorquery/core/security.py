from typing import Optional, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken

from .config import settings
from .exceptions import CredentialError
from .logging import get_logger


logger = get_logger(__name__)

ENCRYPTION_PREFIX = "fernet:"


@runtime_checkable
class CredentialEncryptor(Protocol):
    """Opaque encrypt/decrypt capability used for stored secrets."""

    def encrypt(self, plain: str) -> str: ...

    def decrypt(self, cipher: str) -> str: ...

    def is_encrypted(self, text: str) -> bool: ...


def generate_key() -> str:
    """Generate a new Fernet key suitable for SENSORQUERY_CREDENTIAL_KEY."""
    return Fernet.generate_key().decode("utf-8")


class FernetCredentialEncryptor:
    """
    Symmetric credential encryptor backed by Fernet.

    Encrypted values are stored as "fernet:<token>" so that plain values
    saved by older configurations can still be recognised and passed through.
    """

    def __init__(self, key: Optional[str] = None):
        key = key or settings.credential_key
        if not key:
            raise CredentialError(
                "No credential key configured. Set SENSORQUERY_CREDENTIAL_KEY or pass a key."
            )
        try:
            self._fernet = Fernet(key.encode("utf-8") if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise CredentialError("Invalid credential key: expected a urlsafe base64 Fernet key") from e

    def encrypt(self, plain: str) -> str:
        """
        Encrypt a plain-text secret.

        Args:
            plain: Secret to protect

        Returns:
            Prefixed ciphertext. Empty input and already encrypted
            values are returned unchanged.
        """
        if not plain:
            return plain

        if self.is_encrypted(plain):
            logger.debug("credential.already_encrypted")
            return plain

        token = self._fernet.encrypt(plain.encode("utf-8"))
        return ENCRYPTION_PREFIX + token.decode("utf-8")

    def decrypt(self, cipher: str) -> str:
        """
        Decrypt a stored secret.

        Args:
            cipher: Prefixed ciphertext produced by encrypt()

        Returns:
            Plain-text secret. Values without the prefix are returned as-is.

        Raises:
            CredentialError: If the token is corrupted or was encrypted with another key
        """
        if not cipher:
            return cipher

        if not self.is_encrypted(cipher):
            logger.warning("credential.decrypt_plaintext")
            return cipher

        token = cipher[len(ENCRYPTION_PREFIX):]
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            logger.error("credential.decrypt_failed")
            raise CredentialError(
                "Failed to decrypt credential. It may be corrupted or encrypted with a different key."
            ) from e

    def is_encrypted(self, text: str) -> bool:
        return bool(text) and text.startswith(ENCRYPTION_PREFIX)
