"""
Encryption of the access token stored in the config file.

The key is derived from machine-specific data so the config can be read
back on the same machine without prompting for a password.
"""

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
import binascii
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_KDF_ITERATIONS = 100000
_MACHINE_SALT = b'vimeo-upload-salt-v1'


class CredentialManager:
    """Manager for encrypting/decrypting stored credentials."""

    @staticmethod
    def derive_key(secret: str, salt: bytes) -> bytes:
        """
        Derive a Fernet key from a secret using PBKDF2-SHA256.

        Args:
            secret: Secret material to stretch
            salt: Salt bytes for key derivation

        Returns:
            URL-safe base64 encoded 32 byte key
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_KDF_ITERATIONS,
        )
        return base64.urlsafe_b64encode(kdf.derive(secret.encode()))

    @staticmethod
    def machine_key() -> bytes:
        """Key derived from the machine id and the current user."""
        try:
            with open('/etc/machine-id', 'r') as f:
                machine_id = f.read().strip()
        except OSError:
            machine_id = os.getenv('HOSTNAME', 'default-machine')

        username = os.getenv('USER', 'default-user')
        return CredentialManager.derive_key(f"{machine_id}-{username}", _MACHINE_SALT)

    @staticmethod
    def encrypt(data: str, key: Optional[bytes] = None) -> str:
        """Encrypt a string, returning URL-safe base64 text."""
        if key is None:
            key = CredentialManager.machine_key()
        token = Fernet(key).encrypt(data.encode())
        return base64.urlsafe_b64encode(token).decode()

    @staticmethod
    def decrypt(encrypted_data: str, key: Optional[bytes] = None) -> Optional[str]:
        """
        Decrypt a string produced by ``encrypt``.

        Returns:
            The plain text, or None if the data was encrypted with another key
            or is not encrypted at all
        """
        if key is None:
            key = CredentialManager.machine_key()
        try:
            token = base64.urlsafe_b64decode(encrypted_data.encode())
            return Fernet(key).decrypt(token).decode()
        except (InvalidToken, binascii.Error, ValueError) as e:
            logger.warning("Credential decryption failed: %s", e.__class__.__name__)
            return None
