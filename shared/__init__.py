"""
Shared modules for the Store-Credit Exchange application.

This package contains shared configuration and utilities used across the application.
"""

from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    EXCHANGE_CONTAINERS,
    EXCHANGE_CONTAINER_NAMES,
    get_exchange_container_name,
    get_exchange_container_config,
)

__all__ = [
    "COSMOS_ENDPOINT",
    "DATABASE_NAME",
    "EXCHANGE_CONTAINERS",
    "EXCHANGE_CONTAINER_NAMES",
    "get_exchange_container_name",
    "get_exchange_container_config",
]
