"""
Tests for concurrency utilities.

DistributedLock provides Redis-based mutual exclusion around one order's
settlement; check_version guards operator actions against stale reads.
"""

import uuid

import pytest

from settlements.exceptions import LockAcquisitionError, SettlementNotFoundError, StaleRecordError
from settlements.locks import DistributedLock, check_version
from settlements.models import TransferRecord
from settlements.tests.factories import TransferRecordFactory


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        """Should acquire lock when available."""
        lock = DistributedLock("settlement:order:1", ttl=120, blocking=False)
        result = lock.acquire()

        assert result is True
        assert lock._token is not None
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:settlement:order:1"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 120

    def test_acquire_generates_unique_token(self, mock_redis):
        lock1 = DistributedLock("settlement:order:1", blocking=False)
        lock2 = DistributedLock("settlement:order:2", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token is not None
        assert lock1._token != lock2._token

    def test_acquire_non_blocking_raises_when_held(self, mock_redis):
        """Non-blocking mode should raise immediately if lock unavailable."""
        mock_redis.set.return_value = False

        lock = DistributedLock("settlement:order:1", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:settlement:order:1"
        assert lock._token is None
        mock_redis.set.assert_called_once()

    def test_acquire_blocking_waits_and_acquires(self, mock_redis):
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("settlement:order:1", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_acquire_blocking_timeout_raises_error(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("settlement:order:1", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "within 0.1s" in str(exc_info.value)
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_success(self, mock_redis):
        lock = DistributedLock("settlement:order:1", blocking=False)
        lock.acquire()

        assert lock.release() is True
        assert lock._token is None
        mock_redis.eval.assert_called_once()

    def test_release_only_if_owned(self, mock_redis):
        """Should not delete a lock another worker re-acquired after expiry."""
        mock_redis.eval.return_value = 0

        lock = DistributedLock("settlement:order:1", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire_returns_false(self, mock_redis):
        lock = DistributedLock("settlement:order:1", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        """Should release the lock and let the exception through."""
        with pytest.raises(ValueError, match="boom"):
            with DistributedLock("settlement:order:1", blocking=False):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()


@pytest.mark.django_db
class TestCheckVersion:
    """Tests for optimistic version checks."""

    def test_matching_version_returns_record(self):
        record = TransferRecordFactory()

        locked = check_version(TransferRecord, record.id, expected_version=record.version)

        assert locked.id == record.id

    def test_stale_version_raises(self):
        """Should report both versions when the record moved on."""
        record = TransferRecordFactory()
        fresh = TransferRecord.objects.get(id=record.id)
        fresh.last_error = "changed elsewhere"
        fresh.save(update_fields=["last_error", "version", "updated_at"])

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(TransferRecord, record.id, expected_version=record.version)

        assert exc_info.value.details["expected_version"] == 1
        assert exc_info.value.details["current_version"] == 2

    def test_missing_record_raises_not_found(self):
        with pytest.raises(SettlementNotFoundError):
            check_version(TransferRecord, uuid.uuid4(), expected_version=1)

    def test_save_increments_version(self):
        record = TransferRecordFactory()
        assert record.version == 1

        record.last_error = "first"
        record.save(update_fields=["last_error", "version", "updated_at"])
        record.last_error = "second"
        record.save(update_fields=["last_error", "version", "updated_at"])

        assert record.version == 3
        assert TransferRecord.objects.get(id=record.id).version == 3
