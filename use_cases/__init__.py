"""
Use Cases Package.

Each use case is a self-contained module with its own:
- domain/: Pure business logic (models, policies, services)
- Repositories on top of the core data layer
- HTTP routes

Available use cases:
- exchange: Product exchanges for store credit (loyalty points)

Architecture:
Each use case follows the layered architecture pattern defined in core/.
"""

from use_cases.exchange import ExchangeLifecycleManager, ExchangeServices, build_services

__all__ = [
    "ExchangeLifecycleManager",
    "ExchangeServices",
    "build_services",
]
