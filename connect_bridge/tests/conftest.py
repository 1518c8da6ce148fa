import json
from unittest.mock import Mock

import pytest

from connect_bridge.app import create_app
from connect_bridge.config import TestingConfig


@pytest.fixture
def mappings_path(tmp_path):
    return tmp_path / "mappings.json"


@pytest.fixture
def app(mappings_path):
    """Create Flask test app backed by a temporary mapping file"""
    return create_app(TestingConfig, {"MAPPINGS_PATH": str(mappings_path)})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["connect_bridge"]


@pytest.fixture
def glide_ok():
    response = Mock()
    response.raise_for_status = Mock(return_value=None)
    return response


def account_for(**kwargs):
    """Account.create side effect: account id derived from the row id"""
    account = Mock()
    account.id = f"acct_{kwargs['metadata']['row_id']}"
    return account


def link(url):
    result = Mock()
    result.url = url
    return result


def account_updated_event(account_id, charges=True, payouts=True, details=True, event_type="account.updated"):
    return json.dumps({
        "id": "evt_test_1",
        "type": event_type,
        "data": {
            "object": {
                "id": account_id,
                "object": "account",
                "charges_enabled": charges,
                "payouts_enabled": payouts,
                "details_submitted": details
            }
        }
    })
