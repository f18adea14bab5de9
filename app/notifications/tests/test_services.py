"""
Tests for Notifier.

Every method queues a Celery task and never raises, whatever the broker
does.
"""

import logging
import uuid

import pytest

from notifications.services import Notifier
from settlements.state_machines import TransferState
from settlements.tests.factories import TransferRecordFactory


@pytest.fixture
def mock_tasks(mocker):
    return {
        "order_confirmation": mocker.patch("notifications.tasks.send_order_confirmation.delay"),
        "merchant_alert": mocker.patch("notifications.tasks.send_merchant_order_alert.delay"),
        "operator_alert": mocker.patch("notifications.tasks.send_operator_alert.delay"),
    }


class TestOrderNotifications:
    def test_order_created_queues_confirmation(self, mock_tasks):
        order_id = uuid.uuid4()

        Notifier.notify_order_created(order_id)

        mock_tasks["order_confirmation"].assert_called_once_with(str(order_id))
        mock_tasks["merchant_alert"].assert_not_called()

    def test_notify_merchant_queues_alert(self, mock_tasks):
        order_id = uuid.uuid4()

        Notifier.notify_merchant(order_id)

        mock_tasks["merchant_alert"].assert_called_once_with(str(order_id))

    @pytest.mark.parametrize(
        ("method", "task"),
        [
            ("notify_order_created", "order_confirmation"),
            ("notify_merchant", "merchant_alert"),
        ],
    )
    def test_broker_failure_is_swallowed(self, mock_tasks, caplog, method, task):
        mock_tasks[task].side_effect = ConnectionError("broker unreachable")

        with caplog.at_level(logging.ERROR):
            getattr(Notifier, method)(uuid.uuid4())

        assert "Failed to queue" in caplog.text


@pytest.mark.django_db
class TestOperatorAlert:
    @pytest.fixture
    def failed_record(self):
        return TransferRecordFactory(
            state=TransferState.FAILED_PERMANENT,
            attempt_count=5,
            last_error="Gave up after 5 attempts: Stripe API unavailable",
        )

    def test_queues_alert_with_details(self, mock_tasks, failed_record):
        Notifier.notify_operators_settlement_failed(failed_record)

        mock_tasks["operator_alert"].assert_called_once()
        subject, message = mock_tasks["operator_alert"].call_args.args
        assert subject == f"Settlement failed for order {failed_record.order_id}"
        assert "5.80 GBP" in message
        assert "after 5 attempts" in message
        assert "Stripe API unavailable" in message

    def test_logs_critical(self, mock_tasks, failed_record, caplog):
        with caplog.at_level(logging.CRITICAL, logger="notifications.services.Notifier"):
            Notifier.notify_operators_settlement_failed(failed_record)

        assert any(record.levelno == logging.CRITICAL for record in caplog.records)

    def test_broker_failure_is_swallowed(self, mock_tasks, failed_record):
        mock_tasks["operator_alert"].side_effect = ConnectionError("broker unreachable")

        Notifier.notify_operators_settlement_failed(failed_record)
