"""
Configuration module for SocketChat.
Stores server settings, token secrets and message limits.
"""

import os
from typing import Dict, Any


class Config:
    """Application configuration class."""

    # JWT Configuration
    JWT_SECRET = os.environ.get("JWT_SECRET", "default-secret-key-change-in-production")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRE_MINUTES = int(os.environ.get("JWT_EXPIRE_MINUTES", "1440"))
    # Claim carrying the repository user id; "sub" is accepted as a fallback
    JWT_USER_CLAIM = "id"

    # Server Configuration
    DEFAULT_HOST = os.environ.get("SOCKETCHAT_HOST", "localhost")
    DEFAULT_SERVER_PORT = int(os.environ.get("SOCKETCHAT_PORT", "8765"))
    DEFAULT_API_PORT = int(os.environ.get("SOCKETCHAT_API_PORT", "8766"))

    # SQLite database; unset means the in-memory store
    SQLITE_DB_FILE = os.environ.get("SOCKETCHAT_DB")

    # Outbound delivery: per-connection queue bound and the time a
    # transport gets to accept a frame before it is treated as stalled
    OUTBOUND_QUEUE_SIZE = int(os.environ.get("SOCKETCHAT_OUTBOUND_QUEUE", "256"))
    SEND_TIMEOUT = float(os.environ.get("SOCKETCHAT_SEND_TIMEOUT", "0.25"))

    # Runtime environment used to pick a logging preset
    ENVIRONMENT = os.environ.get("SOCKETCHAT_ENV", "development")

    # Message, group and user limits
    MAX_MESSAGE_LENGTH = 1000
    GROUP_NAME_MIN_LENGTH = 3
    GROUP_NAME_MAX_LENGTH = 50
    GROUP_DESCRIPTION_MAX_LENGTH = 200
    NAME_MAX_LENGTH = 50
    ADMIN_PAGE_MAX_LIMIT = 100
    ROLES = ("user", "admin")

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Get all configuration values as a dictionary."""
        return {
            "JWT_SECRET": cls.JWT_SECRET,
            "JWT_ALGORITHM": cls.JWT_ALGORITHM,
            "JWT_EXPIRE_MINUTES": cls.JWT_EXPIRE_MINUTES,
            "JWT_USER_CLAIM": cls.JWT_USER_CLAIM,
            "DEFAULT_HOST": cls.DEFAULT_HOST,
            "DEFAULT_SERVER_PORT": cls.DEFAULT_SERVER_PORT,
            "DEFAULT_API_PORT": cls.DEFAULT_API_PORT,
            "SQLITE_DB_FILE": cls.SQLITE_DB_FILE,
            "OUTBOUND_QUEUE_SIZE": cls.OUTBOUND_QUEUE_SIZE,
            "SEND_TIMEOUT": cls.SEND_TIMEOUT,
            "ENVIRONMENT": cls.ENVIRONMENT,
            "MAX_MESSAGE_LENGTH": cls.MAX_MESSAGE_LENGTH,
            "GROUP_NAME_MIN_LENGTH": cls.GROUP_NAME_MIN_LENGTH,
            "GROUP_NAME_MAX_LENGTH": cls.GROUP_NAME_MAX_LENGTH,
            "GROUP_DESCRIPTION_MAX_LENGTH": cls.GROUP_DESCRIPTION_MAX_LENGTH,
            "NAME_MAX_LENGTH": cls.NAME_MAX_LENGTH,
            "ADMIN_PAGE_MAX_LIMIT": cls.ADMIN_PAGE_MAX_LIMIT,
            "ROLES": cls.ROLES,
        }


# Create config instance
config = Config()
