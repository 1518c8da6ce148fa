"""
Stripe Connect integration service

Creates connected accounts, hosted onboarding Account Links and
Express Dashboard login links, and verifies webhook payloads.

References:
- Stripe Connect Onboarding: https://docs.stripe.com/connect/onboarding
- Account Links: https://docs.stripe.com/api/account_links
- Login Links: https://docs.stripe.com/api/accounts/login_link
"""

import json
import logging
from typing import Dict, Optional, Any

import stripe

logger = logging.getLogger(__name__)


class StripeConnectError(Exception):
    """Raised when Stripe Connect operations fail"""
    pass


class StripeConnectService:
    """
    Service for managing Stripe Connect accounts for Glide rows

    Every call passes the configured secret key and API version
    explicitly instead of relying on module-level stripe globals.
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_version: Optional[str] = None,
        country: str = "US",
        storefront_url: str = "",
        refresh_url: str = "",
        return_url: str = "",
        webhook_secret: Optional[str] = None
    ):
        self.api_key = api_key
        self.api_version = api_version
        self.country = country
        self.storefront_url = storefront_url
        self.refresh_url = refresh_url
        self.return_url = return_url
        self.webhook_secret = webhook_secret

    @classmethod
    def from_config(cls, config) -> "StripeConnectService":
        return cls(
            api_key=config.get("STRIPE_SECRET_KEY"),
            api_version=config.get("STRIPE_API_VERSION"),
            country=config.get("STRIPE_ACCOUNT_COUNTRY", "US"),
            storefront_url=config.get("STOREFRONT_URL", ""),
            refresh_url=config.get("ONBOARDING_REFRESH_URL", ""),
            return_url=config.get("ONBOARDING_RETURN_URL", ""),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET")
        )

    def _request_options(self) -> Dict[str, Any]:
        if not self.api_key:
            raise StripeConnectError("STRIPE_SECRET_KEY is not configured")
        options = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    def create_connected_account(
        self,
        email: str,
        row_id: str,
        account_type: str = "express",
        business_type: str = "individual",
        name: Optional[str] = None,
        employer_email: Optional[str] = None
    ) -> str:
        """
        Create a new connected account for a Glide row

        Args:
            email: Account holder's email address
            row_id: Glide row id, stored in the account metadata
            account_type: Stripe account type (default: express)
            business_type: Stripe business type (default: individual)
            name: Optional display name, stored in metadata
            employer_email: Optional employer email, stored in metadata

        Returns:
            Stripe account ID

        Raises:
            StripeConnectError: If account creation fails
        """
        metadata = {"row_id": row_id}
        if name:
            metadata["name"] = name
        if employer_email:
            metadata["employer_email"] = employer_email

        try:
            account = stripe.Account.create(
                type=account_type,
                country=self.country,
                email=email,
                business_type=business_type,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True}
                },
                business_profile={"url": self.storefront_url},
                metadata=metadata,
                **self._request_options()
            )

            logger.info(f"Created Stripe {account_type} account {account.id} for row {row_id}")
            return account.id

        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe account for row {row_id}: {str(e)}")
            raise StripeConnectError(f"Account creation failed: {str(e)}")

    def create_onboarding_link(self, account_id: str) -> str:
        """
        Create a single-use hosted onboarding link

        Args:
            account_id: Stripe connected account ID

        Returns:
            Account Link URL for hosted onboarding

        Raises:
            StripeConnectError: If link creation fails
        """
        try:
            account_link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=self.refresh_url,
                return_url=self.return_url,
                type="account_onboarding",
                **self._request_options()
            )

            logger.info(f"Created onboarding link for account {account_id}")
            return account_link.url

        except stripe.StripeError as e:
            logger.error(f"Failed to create onboarding link for {account_id}: {str(e)}")
            raise StripeConnectError(f"Onboarding link creation failed: {str(e)}")

    def create_dashboard_login_link(self, account_id: str) -> str:
        """
        Create a one-time login link to the Express Dashboard

        Raises:
            StripeConnectError: If login link creation fails
        """
        try:
            login_link = stripe.Account.create_login_link(
                account_id,
                **self._request_options()
            )

            logger.info(f"Created dashboard login link for account {account_id}")
            return login_link.url

        except stripe.StripeError as e:
            logger.error(f"Failed to create dashboard login link for {account_id}: {str(e)}")
            raise StripeConnectError(f"Dashboard login link creation failed: {str(e)}")

    @staticmethod
    def is_onboarding_complete(account: Dict[str, Any]) -> bool:
        """
        Check whether an account object reports finished onboarding

        Args:
            account: Account object as embedded in an event payload

        Returns:
            True only if charges, payouts and submitted details are all enabled
        """
        return (
            account.get("charges_enabled") is True and
            account.get("payouts_enabled") is True and
            account.get("details_submitted") is True
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Decode a webhook payload, verifying its signature when a secret is set

        Args:
            payload: Raw request body
            signature: Stripe-Signature header value

        Returns:
            Decoded event as a plain dict

        Raises:
            ValueError: If the payload is not valid JSON
            stripe.SignatureVerificationError: If the signature is missing or invalid
        """
        if not self.webhook_secret:
            return json.loads(payload)

        if not signature:
            raise stripe.SignatureVerificationError("Missing Stripe-Signature header", signature, payload)

        stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return json.loads(payload)
