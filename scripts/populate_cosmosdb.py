"""
Cosmos DB Data Population Script for the Store-Credit Exchange service.

Populates sample warehouses and user profiles into Azure Cosmos DB using
AzureCliCredential. Exchange requests and credit history start empty and
are written at runtime.

Usage:
    python scripts/populate_cosmosdb.py

Environment:
    COSMOS_ENDPOINT - Override the default Cosmos DB endpoint
    COSMOS_DATABASE - Override the default database name
    SEED_ADMIN_PASSWORD - Password for the sample administrator (default: admin123)
    SEED_CUSTOMER_PASSWORD - Password for the sample customer (default: customer123)

Containers Required:
    - Exchange_Requests      (partition: /id)
    - Exchange_Warehouses    (partition: /id)
    - Exchange_CreditHistory (partition: /id)
    - Exchange_Users         (partition: /id)
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import CosmosHttpResponseError
from azure.identity import AzureCliCredential

# Import configuration from shared module
from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    EXCHANGE_CONTAINERS,
    get_exchange_container_config,
)

from auth import hash_password
from use_cases.exchange.domain.models import UserProfile, Warehouse

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


# =============================================================================
# SAMPLE DATA
# =============================================================================

WAREHOUSES = [
    {
        "id": "WH-BLR01",
        "name": "Bengaluru Returns Hub",
        "addressLine1": "42 Outer Ring Road",
        "addressLine2": "Bellandur",
        "city": "Bengaluru",
        "state": "Karnataka",
        "postalCode": "560103",
        "country": "India",
        "contactPerson": "Anita Rao",
        "contactPhone": "+91 80 4000 1234",
    },
    {
        "id": "WH-MUM01",
        "name": "Mumbai Exchange Centre",
        "addressLine1": "7 Andheri Kurla Road",
        "city": "Mumbai",
        "state": "Maharashtra",
        "postalCode": "400059",
        "country": "India",
        "contactPerson": "Rahul Desai",
        "contactPhone": "+91 22 4000 5678",
    },
    {
        "id": "WH-DEL01",
        "name": "Delhi Warehouse (closed)",
        "addressLine1": "15 Okhla Industrial Estate",
        "city": "New Delhi",
        "state": "Delhi",
        "postalCode": "110020",
        "country": "India",
        "isActive": False,
    },
]

USERS = [
    {
        "id": "USR-ADMIN001",
        "email": "admin@swapcred.example",
        "firstName": "Store",
        "lastName": "Admin",
        "isAdmin": True,
        "password_env": ("SEED_ADMIN_PASSWORD", "admin123"),
    },
    {
        "id": "USR-CUST001",
        "email": "priya@swapcred.example",
        "firstName": "Priya",
        "lastName": "Sharma",
        "isAdmin": False,
        "password_env": ("SEED_CUSTOMER_PASSWORD", "customer123"),
    },
]


# =============================================================================
# DATA PREPARATION
# =============================================================================

def prepare_warehouses() -> List[Dict[str, Any]]:
    """Normalize warehouses through the domain model so stored shape matches the app."""
    return [Warehouse.from_dict(w).to_dict() for w in WAREHOUSES]


def prepare_users() -> List[Dict[str, Any]]:
    """Hash passwords and lower-case emails (logins look users up by lower-cased email)."""
    items = []
    for u in USERS:
        env_name, default = u["password_env"]
        profile = UserProfile(
            id=u["id"],
            email=u["email"].strip().lower(),
            first_name=u["firstName"],
            last_name=u["lastName"],
            is_admin=u["isAdmin"],
            password_hash=hash_password(os.getenv(env_name, default)),
        )
        items.append(profile.to_dict())
    return items


# =============================================================================
# COSMOS DB OPERATIONS
# =============================================================================

def upsert_items(container, items: List[Dict[str, Any]]) -> int:
    """Upsert items into a container."""
    count = 0
    for item in items:
        try:
            container.upsert_item(item)
            count += 1
        except CosmosHttpResponseError as e:
            logger.error(f"Failed to upsert item {item.get('id')}: {e}")
    return count


def main():
    """Main function to populate Cosmos DB with exchange sample data."""
    logger.info("=" * 60)
    logger.info("Store-Credit Exchange - Cosmos DB Population Script")
    logger.info("=" * 60)
    logger.info(f"Endpoint: {COSMOS_ENDPOINT}")
    logger.info(f"Database: {DATABASE_NAME}")
    logger.info("Authentication: AzureCliCredential")
    logger.info("=" * 60)

    logger.info("\nAuthenticating with Azure CLI...")
    credential = AzureCliCredential()

    client = CosmosClient(COSMOS_ENDPOINT, credential=credential)

    logger.info(f"Connecting to database '{DATABASE_NAME}'...")
    try:
        database = client.get_database_client(DATABASE_NAME)
        database.read()
        logger.info(f"Database '{DATABASE_NAME}' found")
    except CosmosHttpResponseError as e:
        logger.error(f"Database '{DATABASE_NAME}' not found or access denied: {e}")
        logger.error("Please create the database first or check RBAC permissions")
        return

    data_sets = [
        ("warehouses", prepare_warehouses()),
        ("users", prepare_users()),
    ]

    logger.info("\n--- Exchange Containers (pre-created via Azure CLI) ---")
    for key, (container_name, partition_key) in EXCHANGE_CONTAINERS.items():
        logger.info(f"  {container_name} (partition: {partition_key})")

    logger.info("\n--- Populating Sample Data ---")
    total_items = 0
    for key, items in data_sets:
        container_name, _ = get_exchange_container_config(key)
        container = database.get_container_client(container_name)
        count = upsert_items(container, items)
        logger.info(f"  {container_name}: {count} items")
        total_items += count

    logger.info("\n" + "=" * 60)
    logger.info(f"COMPLETE: {total_items} total items populated")
    logger.info("Exchange requests and credit history are written at runtime")
    logger.info("=" * 60)

    # Print Azure CLI commands for creating all containers
    logger.info("\n--- Azure CLI Commands to Create All Containers ---")
    logger.info("# If containers don't exist, run these commands:")
    logger.info("")
    for key, (container_name, partition_key) in EXCHANGE_CONTAINERS.items():
        logger.info(f'az cosmosdb sql container create --account-name "<cosmos-account>" --database-name "{DATABASE_NAME}" --name "{container_name}" --partition-key-path "{partition_key}" --resource-group "<resource-group>"')


if __name__ == "__main__":
    main()
