"""Secure API key storage using the system keychain."""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

__all__ = ["KeychainManager"]

logger = logging.getLogger(__name__)

SERVICE_NAME = "Ascend Tracker"
ACCOUNT_NAME = "api_key"


class KeychainManager:
    """Manages the Ascend API key in the system keychain."""

    def __init__(self, service_name: str = SERVICE_NAME):
        """Initialize keychain manager.

        Args:
            service_name: Service name for keychain entries
        """
        self.service_name = service_name

    def store(self, api_key: str) -> bool:
        """Store the API key.

        Returns:
            True if stored successfully
        """
        try:
            keyring.set_password(self.service_name, ACCOUNT_NAME, api_key)
            logger.info("API key stored")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store API key: {e}")
            return False

    def load(self) -> Optional[str]:
        """Load the API key, or None if absent or unreadable."""
        try:
            return keyring.get_password(self.service_name, ACCOUNT_NAME) or None
        except KeyringError as e:
            logger.error(f"Failed to load API key: {e}")
            return None

    def delete(self) -> bool:
        """Delete the stored API key.

        Returns:
            True if deleted (or didn't exist)
        """
        try:
            keyring.delete_password(self.service_name, ACCOUNT_NAME)
            logger.info("API key deleted")
            return True
        except PasswordDeleteError:
            return True
        except KeyringError as e:
            logger.error(f"Failed to delete API key: {e}")
            return False

    def has_api_key(self) -> bool:
        """Check if an API key is stored."""
        return self.load() is not None
