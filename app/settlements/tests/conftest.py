"""
Pytest fixtures for settlement tests.

Sections:
    - Redis and Celery fixtures
    - Fake payout gateway (see fakes.py)
    - Record fixtures
"""

from __future__ import annotations

import pytest

from settlements.services import TransferOrchestrator
from settlements.tests.factories import TransferRecordFactory
from settlements.tests.fakes import FakePayoutGateway


# =============================================================================
# Redis and Celery Fixtures
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Every acquisition succeeds and every release finds its token.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1

    mocker.patch("settlements.locks.get_redis_connection", return_value=mock_client)
    return mock_client


@pytest.fixture
def mock_settle_task(mocker):
    """Capture settle_order scheduling instead of reaching the broker."""
    return mocker.patch("settlements.tasks.settle_order.apply_async")


@pytest.fixture
def mock_operator_alert(mocker):
    return mocker.patch("notifications.tasks.send_operator_alert.delay")


# =============================================================================
# Fake Payout Gateway
# =============================================================================


@pytest.fixture
def fake_gateway():
    gateway = FakePayoutGateway()
    TransferOrchestrator.set_gateway(gateway)
    try:
        yield gateway
    finally:
        TransferOrchestrator.set_gateway(None)


# =============================================================================
# Record Fixtures
# =============================================================================


@pytest.fixture
def transfer_record(db):
    """PENDING settlement for a 600p order (payout 580)."""
    return TransferRecordFactory()
