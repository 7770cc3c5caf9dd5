"""
Encryption service for commerce-platform credentials.
Uses Fernet symmetric encryption with key from environment.
"""
import logging
from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

logger = logging.getLogger('security')


class EncryptionService:
    """Service for encrypting and decrypting stored secrets"""

    def __init__(self):
        encryption_key = getattr(settings, 'ENCRYPTION_KEY', None)

        if not encryption_key:
            raise ValueError(
                "ENCRYPTION_KEY not found in settings. "
                "Add ENCRYPTION_KEY to your .env file. "
                "Generate one with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
            )

        # Ensure key is bytes
        if isinstance(encryption_key, str):
            encryption_key = encryption_key.encode()

        self.cipher = Fernet(encryption_key)

    def encrypt_secret(self, secret: str) -> str:
        """
        Encrypt an API credential for storage.

        Args:
            secret: Plain text credential

        Returns:
            Encrypted credential as string
        """
        if not secret:
            return ""

        encrypted = self.cipher.encrypt(secret.encode())
        return encrypted.decode()

    def decrypt_secret(self, encrypted_secret: str) -> str:
        """
        Decrypt a stored API credential.

        Args:
            encrypted_secret: Encrypted credential

        Returns:
            Plain text credential, or "" when the value cannot be decrypted
        """
        if not encrypted_secret:
            return ""

        try:
            decrypted = self.cipher.decrypt(encrypted_secret.encode())
            return decrypted.decode()
        except InvalidToken:
            # Don't expose details
            logger.error("Failed to decrypt stored credential (key rotated or value corrupted)")
            return ""


def get_encryption_service():
    """Build the service lazily so settings overrides in tests are honored."""
    return EncryptionService()
