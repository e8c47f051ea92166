"""
Pytest configuration and fixtures for ic-bn-logs tests.
"""

import logging
import os

import pytest

from ic_bn_logs.config import ClientConfig
from ic_bn_logs.models import SubscriptionRequest

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

LEDGER_CANISTER_ID = "ryjl3-tyaaa-aaaaa-aaaba-cai"


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep IC_BN_LOGS_* variables and stray .env files out of the tests"""
    for key in list(os.environ):
        if key.startswith("IC_BN_LOGS_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)

    yield

    # load_dotenv writes straight to os.environ
    for key in list(os.environ):
        if key.startswith("IC_BN_LOGS_"):
            del os.environ[key]


@pytest.fixture
def canister_id():
    """Fixture providing a valid canister id"""
    return LEDGER_CANISTER_ID


@pytest.fixture
def subscription(canister_id):
    """Fixture providing the subscription request"""
    return SubscriptionRequest(resource_id=canister_id)


@pytest.fixture
def fast_config():
    """Fixture providing a configuration with short timeouts"""
    return ClientConfig(
        connect_timeout=1.0,
        subscribe_timeout=0.3,
        close_timeout=0.5,
        shutdown_grace=1.0,
        ping_interval=5.0,
        ping_timeout=5.0,
    )
