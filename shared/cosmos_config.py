"""
Azure Cosmos DB Configuration.

Centralized configuration for all Cosmos DB settings used across the application.
This ensures consistency between the application, scripts, and data population tools.

Environment Variables (optional overrides):
    COSMOS_ENDPOINT - Override the default Cosmos DB endpoint
    COSMOS_DATABASE - Override the default database name
"""

import os

# =============================================================================
# COSMOS DB CONNECTION
# =============================================================================

COSMOS_ENDPOINT = os.getenv(
    "COSMOS_ENDPOINT",
    "https://localhost:8081/"
)

DATABASE_NAME = os.getenv(
    "COSMOS_DATABASE",
    "swapcred"
)

# =============================================================================
# EXCHANGE DATA CONTAINERS
# =============================================================================

# Format: logical_name -> (container_name, partition_key_path)
EXCHANGE_CONTAINERS = {
    "exchange_requests": ("Exchange_Requests", "/id"),
    "warehouses": ("Exchange_Warehouses", "/id"),
    "credit_history": ("Exchange_CreditHistory", "/id"),
    "users": ("Exchange_Users", "/id"),
}

# Simple container name lookup (without partition key)
EXCHANGE_CONTAINER_NAMES = {
    key: name for key, (name, _) in EXCHANGE_CONTAINERS.items()
}

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_exchange_container_name(logical_name: str) -> str:
    """Get the actual container name for a logical container name."""
    if logical_name in EXCHANGE_CONTAINER_NAMES:
        return EXCHANGE_CONTAINER_NAMES[logical_name]
    return logical_name


def get_exchange_container_config(logical_name: str) -> tuple:
    """Get (container_name, partition_key_path) for a container."""
    if logical_name in EXCHANGE_CONTAINERS:
        return EXCHANGE_CONTAINERS[logical_name]
    raise ValueError(f"Unknown exchange container: {logical_name}")
