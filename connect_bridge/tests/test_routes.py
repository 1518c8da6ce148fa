"""
End-to-end tests for the bridge endpoints

Stripe resources and the Glide HTTP session are mocked; the mapping
store writes to a temporary file.

Run with: pytest connect_bridge/tests/test_routes.py -v
"""

import json
import logging
import threading
from unittest.mock import Mock, patch

import pytest
import requests
import stripe

from connect_bridge.app import create_app
from connect_bridge.config import TestingConfig
from connect_bridge.service import CorrelationOutcome
from connect_bridge.validators import CompletionEvent

from .conftest import account_for, account_updated_event, link


ACCOUNT_CREATE = 'connect_bridge.stripe_connect.stripe.Account.create'
ACCOUNT_LINK_CREATE = 'connect_bridge.stripe_connect.stripe.AccountLink.create'
LOGIN_LINK_CREATE = 'connect_bridge.stripe_connect.stripe.Account.create_login_link'
GLIDE_POST = 'connect_bridge.glide.requests.Session.post'


def create_account(client, **body):
    return client.post('/create-connected-account', json=body)


class TestLiveness:

    def test_alive(self, client):
        response = client.get('/')

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "alive"
        assert response.mimetype == "text/plain"


class TestCreateConnectedAccount:
    """POST /create-connected-account"""

    @patch(ACCOUNT_LINK_CREATE, return_value=link("https://connect.stripe.com/setup/row_1"))
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_creates_account_and_returns_link(self, mock_create, mock_link, client, service, mappings_path):
        response = create_account(client, row_id="row_1", email="jane@example.com", name="Jane")

        assert response.status_code == 200
        assert response.get_json() == {"onboarding_url": "https://connect.stripe.com/setup/row_1"}
        assert json.loads(mappings_path.read_text()) == {"row_1": "acct_row_1"}

        kwargs = mock_create.call_args.kwargs
        assert kwargs["email"] == "jane@example.com"
        assert kwargs["country"] == "US"
        assert kwargs["metadata"]["row_id"] == "row_1"
        assert mock_link.call_args.kwargs["account"] == "acct_row_1"
        assert mock_link.call_args.kwargs["type"] == "account_onboarding"

    @patch(ACCOUNT_LINK_CREATE)
    @patch(ACCOUNT_CREATE)
    def test_missing_email_makes_no_outbound_calls(self, mock_create, mock_link, client, mappings_path):
        response = create_account(client, row_id="row_1")

        assert response.status_code == 400
        body = response.get_json()
        assert body["success"] is False
        assert body["code"] == "VAL_2001"
        mock_create.assert_not_called()
        mock_link.assert_not_called()
        assert not mappings_path.exists()

    @patch(ACCOUNT_CREATE)
    def test_missing_row_id(self, mock_create, client):
        response = create_account(client, email="jane@example.com")

        assert response.status_code == 400
        mock_create.assert_not_called()

    @patch(ACCOUNT_CREATE)
    def test_rejects_non_json_body(self, mock_create, client):
        response = client.post(
            '/create-connected-account',
            data='row_id: row_1, email: jane@example.com',
            content_type='text/plain'
        )

        assert response.status_code == 400
        assert response.get_json()["code"] == "VAL_2002"
        mock_create.assert_not_called()

    @patch(ACCOUNT_CREATE)
    def test_rejects_wrapped_string_body(self, mock_create, client):
        response = client.post(
            '/create-connected-account',
            data=json.dumps('{"row_id": "row_1", "email": "jane@example.com"}'),
            content_type='application/json'
        )

        assert response.status_code == 400
        mock_create.assert_not_called()

    @patch(ACCOUNT_CREATE, side_effect=stripe.StripeError("card_payments not available in XX"))
    def test_stripe_failure_is_generic_500(self, mock_create, client, mappings_path):
        response = create_account(client, row_id="row_1", email="jane@example.com")

        assert response.status_code == 500
        body = response.get_json()
        assert body["code"] == "UPS_5001"
        assert "card_payments" not in json.dumps(body)
        assert not mappings_path.exists()

    @patch(ACCOUNT_LINK_CREATE, side_effect=stripe.StripeError("link failed"))
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_link_failure_keeps_mapping(self, mock_create, mock_link, client, service):
        response = create_account(client, row_id="row_1", email="jane@example.com")

        assert response.status_code == 500
        assert service.store.get("row_1") == "acct_row_1"

    @patch(ACCOUNT_LINK_CREATE)
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_storage_failure_is_500(self, mock_create, mock_link, client, mappings_path):
        mappings_path.write_text("{corrupt")

        response = create_account(client, row_id="row_1", email="jane@example.com")

        assert response.status_code == 500
        assert response.get_json()["code"] == "SYS_9002"
        mock_link.assert_not_called()

    @patch(ACCOUNT_LINK_CREATE, return_value=link("https://connect.stripe.com/setup/x"))
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_concurrent_creates_keep_both_mappings(self, mock_create, mock_link, app, service):
        barrier = threading.Barrier(2)
        statuses = []

        def onboard(row_id):
            barrier.wait()
            with app.test_client() as client:
                statuses.append(create_account(client, row_id=row_id, email=f"{row_id}@example.com").status_code)

        threads = [threading.Thread(target=onboard, args=(row,)) for row in ("row_a", "row_b")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert statuses == [200, 200]
        assert service.store.load() == {"row_a": "acct_row_a", "row_b": "acct_row_b"}


class TestSynchronousGlidePush:
    """Onboarding URL pushed to Glide when enabled"""

    @pytest.fixture
    def push_app(self, mappings_path):
        return create_app(TestingConfig, {
            "MAPPINGS_PATH": str(mappings_path),
            "GLIDE_PUSH_ONBOARDING_URL": True
        })

    @patch(GLIDE_POST)
    @patch(ACCOUNT_LINK_CREATE, return_value=link("https://connect.stripe.com/setup/row_1"))
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_pushes_onboarding_url(self, mock_create, mock_link, mock_post, push_app, glide_ok):
        mock_post.return_value = glide_ok

        response = create_account(push_app.test_client(), row_id="row_1", email="jane@example.com")

        assert response.status_code == 200
        mutation = mock_post.call_args.kwargs["json"]["mutations"][0]
        assert mutation["rowID"] == "row_1"
        assert mutation["columnValues"] == {"onboarding_url": "https://connect.stripe.com/setup/row_1"}

    @patch(GLIDE_POST, side_effect=requests.ConnectionError("down"))
    @patch(ACCOUNT_LINK_CREATE, return_value=link("https://connect.stripe.com/setup/row_1"))
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_push_failure_is_500(self, mock_create, mock_link, mock_post, push_app):
        response = create_account(push_app.test_client(), row_id="row_1", email="jane@example.com")

        assert response.status_code == 500
        assert response.get_json()["code"] == "UPS_5001"


class TestRemediationLink:
    """GET /get-remediation-link"""

    @patch(ACCOUNT_LINK_CREATE)
    @patch(ACCOUNT_CREATE, side_effect=account_for)
    def test_reissues_link_without_new_account(self, mock_create, mock_link, client):
        mock_link.side_effect = [
            link("https://connect.stripe.com/setup/first"),
            link("https://connect.stripe.com/setup/second"),
        ]
        create_account(client, row_id="row_1", email="jane@example.com")

        response = client.get('/get-remediation-link?row_id=row_1')

        assert response.status_code == 200
        assert response.get_json() == {
            "employee_row_id": "row_1",
            "remediation_url": "https://connect.stripe.com/setup/second"
        }
        assert mock_create.call_count == 1
        assert mock_link.call_args.kwargs["account"] == "acct_row_1"

    @patch(ACCOUNT_LINK_CREATE, return_value=link("https://connect.stripe.com/setup/x"))
    @patch(ACCOUNT_CREATE)
    def test_second_create_overwrites_mapping(self, mock_create, mock_link, client):
        mock_create.side_effect = [Mock(id="acct_first"), Mock(id="acct_second")]
        create_account(client, row_id="row_1", email="jane@example.com")
        create_account(client, row_id="row_1", email="jane@example.com")

        response = client.get('/get-remediation-link?row_id=row_1')

        assert response.status_code == 200
        assert mock_link.call_args.kwargs["account"] == "acct_second"

    @patch(ACCOUNT_LINK_CREATE)
    def test_unknown_row_is_404(self, mock_link, client):
        response = client.get('/get-remediation-link?row_id=unknown')

        assert response.status_code == 404
        assert response.get_json()["code"] == "RES_3001"
        mock_link.assert_not_called()

    @patch(ACCOUNT_LINK_CREATE)
    def test_missing_row_id_is_400(self, mock_link, client):
        response = client.get('/get-remediation-link')

        assert response.status_code == 400
        assert response.get_json()["code"] == "VAL_2001"
        mock_link.assert_not_called()

    @patch(ACCOUNT_LINK_CREATE, side_effect=stripe.StripeError("boom"))
    def test_stripe_failure_is_500(self, mock_link, client, service):
        service.store.put("row_1", "acct_1")

        response = client.get('/get-remediation-link?row_id=row_1')

        assert response.status_code == 500


class TestWebhook:
    """POST /webhook"""

    def post_event(self, client, payload, **headers):
        return client.post('/webhook', data=payload, content_type='application/json', headers=headers)

    @patch(GLIDE_POST)
    @patch(LOGIN_LINK_CREATE, return_value=link("https://connect.stripe.com/express/login"))
    def test_completed_onboarding_pushes_dashboard_link(self, mock_login, mock_post, client, service, glide_ok):
        mock_post.return_value = glide_ok
        service.store.put("row_1", "acct_1")

        response = self.post_event(client, account_updated_event("acct_1"))

        assert response.status_code == 200
        assert response.get_json() == {"received": True}
        mock_login.assert_called_once()
        assert mock_login.call_args.args[0] == "acct_1"

        body = mock_post.call_args.kwargs["json"]
        assert body["appID"] == "app_test"
        assert body["mutations"][0]["rowID"] == "row_1"
        assert body["mutations"][0]["columnValues"] == {
            "dashboard_url": "https://connect.stripe.com/express/login",
            "onboarded": True
        }
        assert mock_post.call_args.kwargs["headers"] == {"Authorization": "Bearer glide_test_secret"}

    @pytest.mark.parametrize("charges,payouts,details", [
        (True, False, True),
        (False, True, True),
        (True, True, False),
    ])
    @patch(GLIDE_POST)
    @patch(LOGIN_LINK_CREATE)
    def test_partial_completion_is_ignored(self, mock_login, mock_post, charges, payouts, details, client, service):
        service.store.put("row_1", "acct_1")

        response = self.post_event(client, account_updated_event("acct_1", charges, payouts, details))

        assert response.status_code == 200
        mock_login.assert_not_called()
        mock_post.assert_not_called()

    @patch(GLIDE_POST)
    @patch(LOGIN_LINK_CREATE)
    def test_unmapped_account_logs_correlation_miss(self, mock_login, mock_post, client, caplog):
        with caplog.at_level(logging.WARNING, logger="connect_bridge.service"):
            response = self.post_event(client, account_updated_event("acct_unknown"))

        assert response.status_code == 200
        assert response.get_json() == {"received": True}
        mock_login.assert_not_called()
        mock_post.assert_not_called()
        assert any("Correlation miss" in record.getMessage() for record in caplog.records)

    @patch(GLIDE_POST)
    def test_other_event_types_acknowledged(self, mock_post, client, service):
        service.store.put("row_1", "acct_1")

        response = self.post_event(client, account_updated_event("acct_1", event_type="payout.paid"))

        assert response.status_code == 200
        mock_post.assert_not_called()

    @patch(GLIDE_POST)
    @patch(LOGIN_LINK_CREATE)
    def test_other_event_type_without_object_acknowledged(self, mock_login, mock_post, client):
        payload = json.dumps({"id": "evt_1", "type": "payout.paid", "data": {}})

        response = self.post_event(client, payload)

        assert response.status_code == 200
        assert response.get_json() == {"received": True}
        mock_login.assert_not_called()
        mock_post.assert_not_called()

    @patch(GLIDE_POST, side_effect=requests.ConnectionError("down"))
    @patch(LOGIN_LINK_CREATE, return_value=link("https://connect.stripe.com/express/login"))
    def test_glide_failure_still_acknowledged(self, mock_login, mock_post, client, service):
        service.store.put("row_1", "acct_1")

        response = self.post_event(client, account_updated_event("acct_1"))

        assert response.status_code == 200
        assert response.get_json() == {"received": True}

    @patch(GLIDE_POST)
    @patch(LOGIN_LINK_CREATE, side_effect=stripe.StripeError("not an express account"))
    def test_login_link_failure_still_acknowledged(self, mock_login, mock_post, client, service):
        service.store.put("row_1", "acct_1")

        response = self.post_event(client, account_updated_event("acct_1"))

        assert response.status_code == 200
        mock_post.assert_not_called()

    def test_unparsable_body_is_400(self, client):
        response = self.post_event(client, "{not json")

        assert response.status_code == 400
        assert response.get_json()["code"] == "VAL_2003"

    def test_envelope_without_type_is_400(self, client):
        response = self.post_event(client, json.dumps({"data": {"object": {"id": "acct_1"}}}))

        assert response.status_code == 400

    def test_signature_required_when_secret_configured(self, mappings_path):
        app = create_app(TestingConfig, {
            "MAPPINGS_PATH": str(mappings_path),
            "STRIPE_WEBHOOK_SECRET": "whsec_test"
        })

        response = self.post_event(app.test_client(), account_updated_event("acct_1"))

        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid webhook signature"


class TestCorrelationOutcomes:
    """Service-level outcomes of the completion correlator"""

    def event(self, account_id="acct_1", **flags):
        return CompletionEvent.from_payload(json.loads(account_updated_event(account_id, **flags)))

    @patch(GLIDE_POST)
    @patch(LOGIN_LINK_CREATE, return_value=link("https://dash"))
    def test_notified(self, mock_login, mock_post, service, glide_ok):
        mock_post.return_value = glide_ok
        service.store.put("row_1", "acct_1")

        assert service.handle_webhook_event(self.event()) is CorrelationOutcome.NOTIFIED

    def test_incomplete(self, service):
        assert service.handle_webhook_event(self.event(payouts=False)) is CorrelationOutcome.INCOMPLETE

    def test_unmatched(self, service):
        assert service.handle_webhook_event(self.event("acct_x")) is CorrelationOutcome.UNMATCHED

    def test_storage_failure(self, service, mappings_path):
        mappings_path.write_text("[]")

        assert service.handle_webhook_event(self.event()) is CorrelationOutcome.NOTIFY_FAILED


class TestErrorFormat:

    def test_unknown_route(self, client):
        response = client.get('/nope')

        assert response.status_code == 404
        assert response.get_json()["success"] is False

    def test_wrong_method(self, client):
        response = client.get('/create-connected-account')

        assert response.status_code == 405
