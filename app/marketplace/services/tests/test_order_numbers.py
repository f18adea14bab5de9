"""
Tests for OrderNumberAllocator.
"""

import re
from datetime import date

import pytest

from marketplace.models import OrderNumberSequence
from marketplace.services import OrderNumberAllocator
from marketplace.services.order_numbers import format_order_number
from marketplace.tests.factories import MerchantAccountFactory

DAY = date(2026, 1, 1)


class TestFormatOrderNumber:
    def test_pads_to_three_digits(self):
        assert format_order_number("ACM", DAY, 7) == "ACM-260101-007"

    def test_wider_counter_is_not_truncated(self):
        assert format_order_number("ACM", DAY, 1234) == "ACM-260101-1234"

    def test_string_suffix_kept(self):
        assert format_order_number("ACM", DAY, "1767225600000") == "ACM-260101-1767225600000"


@pytest.mark.django_db
class TestNextNumber:
    def test_first_number_of_the_day(self, merchant):
        assert OrderNumberAllocator.next_number(merchant, day=DAY) == "ACM-260101-001"

    def test_defaults_to_today(self, merchant):
        number = OrderNumberAllocator.next_number(merchant)

        assert re.fullmatch(r"ACM-\d{6}-001", number)

    def test_sequential_within_a_day(self, merchant):
        numbers = [OrderNumberAllocator.next_number(merchant, day=DAY) for _ in range(3)]

        assert numbers == ["ACM-260101-001", "ACM-260101-002", "ACM-260101-003"]

    def test_new_day_restarts(self, merchant):
        OrderNumberAllocator.next_number(merchant, day=DAY)

        assert OrderNumberAllocator.next_number(merchant, day=date(2026, 1, 2)) == "ACM-260102-001"

    def test_counters_are_per_merchant(self, merchant):
        other = MerchantAccountFactory(business_name="Bakehouse")
        OrderNumberAllocator.next_number(merchant, day=DAY)

        assert OrderNumberAllocator.next_number(other, day=DAY) == "BAK-260101-001"

    def test_merchant_without_letters(self):
        merchant = MerchantAccountFactory(business_name="24/7")

        assert OrderNumberAllocator.next_number(merchant, day=DAY) == "ORD-260101-001"

    def test_thousand_numbers_are_distinct(self, merchant):
        numbers = [OrderNumberAllocator.next_number(merchant, day=DAY) for _ in range(1000)]

        assert len(set(numbers)) == 1000
        assert numbers[-1] == "ACM-260101-1000"
        sequence = OrderNumberSequence.objects.get(merchant=merchant, day=DAY)
        assert sequence.last_value == 1000


@pytest.mark.django_db
class TestFallbackNumber:
    def test_timestamp_suffix(self, merchant):
        number = OrderNumberAllocator.fallback_number(merchant, day=DAY)

        assert re.fullmatch(r"ACM-260101-\d{13}", number)

    def test_attempt_is_appended(self, merchant, mocker):
        mocker.patch(
            "marketplace.services.order_numbers.time.time_ns",
            return_value=1_767_225_600_000_000_000,
        )

        assert OrderNumberAllocator.fallback_number(merchant, day=DAY) == "ACM-260101-1767225600000"
        assert (
            OrderNumberAllocator.fallback_number(merchant, day=DAY, attempt=2)
            == "ACM-260101-17672256000002"
        )
