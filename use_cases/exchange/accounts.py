"""
Account Registry.

Self-service signup. Only people who already are customers of the commerce
platform may create an account: the email is looked up through the credit
ledger gateway before a profile is stored. New accounts are never
administrators.
"""

import asyncio
import logging
from typing import Optional

from auth import hash_password
from core.errors import DuplicateAccountError, GatewayError, NotFoundError, ValidationError

from .domain.models import UserProfile, new_id
from .domain.policies import RegistrationValidator
from .ledger import CreditLedgerGateway, CustomerLookup
from .repositories import UserRepository

logger = logging.getLogger(__name__)

NOT_A_CUSTOMER = "Email not found in Shopify database. Only existing Shopify customers can register."


class AccountRegistry:

    def __init__(self, users: UserRepository, ledger: CreditLedgerGateway, ledger_timeout: float = 10.0):
        self._users = users
        self._ledger = ledger
        self._ledger_timeout = ledger_timeout
        self._validator = RegistrationValidator()

    async def check_customer(self, email: Optional[str]) -> CustomerLookup:
        """Whether the email belongs to a commerce-platform customer. Ledger failures raise GatewayError."""
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError("A valid email address is required")
        try:
            lookup = await asyncio.wait_for(self._ledger.find_customer(email), timeout=self._ledger_timeout)
        except asyncio.TimeoutError:
            lookup = CustomerLookup(success=False, error=f"Credit ledger timed out after {self._ledger_timeout:g}s")
        if not lookup.success:
            raise GatewayError(lookup.error or "Credit ledger unavailable")
        return lookup

    async def register(
        self,
        email: Optional[str],
        password: Optional[str],
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> UserProfile:
        """
        Create a customer profile.

        Raises:
            ValidationError: malformed email or short password
            DuplicateAccountError: the email already has an account
            NotFoundError: the email is not a commerce-platform customer
            GatewayError: the customer lookup failed
        """
        errors = self._validator.validate({"email": email, "password": password})
        if errors:
            raise ValidationError.from_field_errors(errors)
        email = email.strip().lower()

        if self._users.get_by_email(email) is not None:
            raise DuplicateAccountError("Email is already registered. Please login instead.")

        lookup = await self.check_customer(email)
        if not lookup.exists:
            logger.warning(f"Registration refused for {email}: not a Shopify customer")
            raise NotFoundError(NOT_A_CUSTOMER)

        # Checked again: the lookup above awaits the ledger
        if self._users.get_by_email(email) is not None:
            raise DuplicateAccountError("Email is already registered. Please login instead.")

        profile = self._users.add(UserProfile(
            id=new_id("USR"),
            email=email,
            first_name=(first_name or "").strip() or lookup.first_name,
            last_name=(last_name or "").strip() or lookup.last_name,
            password_hash=hash_password(password),
        ))
        logger.info(f"Registered user {profile.id} ({email}), Shopify customer {lookup.customer_id}")
        return profile
