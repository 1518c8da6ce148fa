"""
Onboarding orchestration service

Ties the mapping store to Stripe Connect and Glide:
1. Create connected account + onboarding link for a Glide row
2. Correlate account.updated events back to the row and push a
   dashboard link to Glide
3. Re-issue an onboarding link for an already mapped row

Upstream errors are logged here and converted to UpstreamFailure so
callers only ever see a generic message.
"""

import logging
from enum import Enum
from typing import Dict

from .error_handling import NotFound, StorageUnavailable, UpstreamFailure
from .glide import GlideClient, GlideError
from .mapping_store import MappingStore
from .stripe_connect import StripeConnectService, StripeConnectError
from .validators import ACCOUNT_UPDATED, CompletionEvent, OnboardingRequest

logger = logging.getLogger(__name__)


class CorrelationOutcome(Enum):
    """What the completion correlator did with an event"""
    IGNORED = "ignored"
    INCOMPLETE = "incomplete"
    UNMATCHED = "unmatched"
    NOTIFIED = "notified"
    NOTIFY_FAILED = "notify_failed"


class OnboardingService:
    """
    Main service orchestrating connected-account onboarding for Glide rows
    """

    def __init__(
        self,
        store: MappingStore,
        stripe_service: StripeConnectService,
        glide_client: GlideClient,
        onboarding_url_column: str = "onboarding_url",
        dashboard_url_column: str = "dashboard_url",
        onboarded_column: str = "onboarded",
        push_onboarding_url: bool = False
    ):
        self.store = store
        self.stripe_service = stripe_service
        self.glide_client = glide_client
        self.onboarding_url_column = onboarding_url_column
        self.dashboard_url_column = dashboard_url_column
        self.onboarded_column = onboarded_column
        self.push_onboarding_url = push_onboarding_url

    @classmethod
    def from_config(cls, config) -> "OnboardingService":
        return cls(
            store=MappingStore(config["MAPPINGS_PATH"]),
            stripe_service=StripeConnectService.from_config(config),
            glide_client=GlideClient.from_config(config),
            onboarding_url_column=config.get("GLIDE_ONBOARDING_URL_COLUMN", "onboarding_url"),
            dashboard_url_column=config.get("GLIDE_DASHBOARD_URL_COLUMN", "dashboard_url"),
            onboarded_column=config.get("GLIDE_ONBOARDED_COLUMN", "onboarded"),
            push_onboarding_url=bool(config.get("GLIDE_PUSH_ONBOARDING_URL", False))
        )

    def create_connected_account(self, onboarding: OnboardingRequest) -> str:
        """
        Create an account for a row, remember it and return an onboarding URL

        The three steps are not transactional: a storage failure after
        account creation leaves an unmapped account at Stripe.

        Args:
            onboarding: Validated onboarding request

        Returns:
            Onboarding URL

        Raises:
            UpstreamFailure: If Stripe or Glide fails
            StorageUnavailable: If the mapping cannot be persisted
        """
        row_id = onboarding.row_id
        try:
            account_id = self.stripe_service.create_connected_account(
                email=onboarding.email,
                row_id=row_id,
                account_type=onboarding.account_type,
                business_type=onboarding.business_type,
                name=onboarding.name,
                employer_email=onboarding.employer_email
            )
        except StripeConnectError as e:
            logger.error(f"Onboarding failed for row {row_id}: {str(e)}")
            raise UpstreamFailure()

        try:
            self.store.put(row_id, account_id)
        except StorageUnavailable:
            logger.error(f"Account {account_id} created but mapping for row {row_id} was not saved")
            raise

        try:
            onboarding_url = self.stripe_service.create_onboarding_link(account_id)
        except StripeConnectError as e:
            logger.error(f"Account {account_id} mapped to row {row_id} but link creation failed: {str(e)}")
            raise UpstreamFailure()

        if self.push_onboarding_url:
            try:
                self.glide_client.set_columns(row_id, {self.onboarding_url_column: onboarding_url})
            except GlideError as e:
                logger.error(f"Failed to push onboarding URL to Glide row {row_id}: {str(e)}")
                raise UpstreamFailure()

        return onboarding_url

    def get_remediation_link(self, row_id: str) -> str:
        """
        Issue a fresh onboarding link for a row's existing account

        Never creates an account. Each call returns a new link.

        Raises:
            NotFound: If the row has no mapped account
            UpstreamFailure: If Stripe fails
            StorageUnavailable: If the mapping cannot be read
        """
        account_id = self.store.get(row_id)
        if account_id is None:
            raise NotFound(f"No account mapped for row {row_id}")

        try:
            return self.stripe_service.create_onboarding_link(account_id)
        except StripeConnectError as e:
            logger.error(f"Remediation link failed for row {row_id}: {str(e)}")
            raise UpstreamFailure()

    def handle_webhook_event(self, event: CompletionEvent) -> CorrelationOutcome:
        """
        Correlate a completion event back to its Glide row

        Never raises for downstream problems: the event is acknowledged
        regardless, delivery to Glide is best-effort and at-most-once.
        """
        if event.event_type != ACCOUNT_UPDATED:
            logger.info(f"Ignoring webhook event type: {event.event_type}")
            return CorrelationOutcome.IGNORED

        account_id = event.account_id
        if not StripeConnectService.is_onboarding_complete(event.account):
            logger.info(f"Account {account_id} updated but onboarding not complete")
            return CorrelationOutcome.INCOMPLETE

        try:
            row_id = self.store.find_row(account_id)
        except StorageUnavailable:
            logger.error(f"Mapping store unavailable while correlating account {account_id}")
            return CorrelationOutcome.NOTIFY_FAILED

        if row_id is None:
            logger.warning(f"Correlation miss: no row mapped to account {account_id}")
            return CorrelationOutcome.UNMATCHED

        try:
            dashboard_url = self.stripe_service.create_dashboard_login_link(account_id)
            self.glide_client.set_columns(row_id, self._completion_columns(dashboard_url))
        except (StripeConnectError, GlideError) as e:
            logger.error(f"Failed to notify Glide row {row_id} of completed onboarding: {str(e)}")
            return CorrelationOutcome.NOTIFY_FAILED

        logger.info(f"Notified Glide row {row_id} that account {account_id} is onboarded")
        return CorrelationOutcome.NOTIFIED

    def _completion_columns(self, dashboard_url: str) -> Dict[str, object]:
        return {
            self.dashboard_url_column: dashboard_url,
            self.onboarded_column: True
        }
