"""Stripe event payloads used by the webhook tests."""

import json
import uuid

from settlements.tests.factories import WebhookEventFactory


def build_event(event_type: str, data_object: dict, event_id: str | None = None) -> dict:
    """Stripe event envelope around a data.object."""
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }


def build_portal_metadata(merchant_id, **overrides) -> dict:
    """
    Customer portal checkout metadata for a 600p pickup order.

    Two units at 3.00, which the default fees turn into a 683p charge and a
    580p merchant payout.
    """
    metadata = {
        "orderType": "customer_portal",
        "wholesalerId": str(merchant_id),
        "customerData": json.dumps(
            {
                "name": "Ada Lovelace",
                "email": "Ada@Example.com",
                "phone": "+44 7700 900123",
                "address": "1 Analytical Way",
                "city": "London",
                "postalCode": "N1 1AA",
                "country": "gb",
            }
        ),
        "cart": json.dumps(
            [
                {
                    "productId": "prod_oat",
                    "quantity": 2,
                    "unitPrice": "3.00",
                    "productName": "Oat milk 1L",
                }
            ]
        ),
        "shippingInfo": json.dumps({"option": "pickup"}),
    }
    metadata.update(overrides)
    return metadata


def make_webhook_event(event_type: str, data_object: dict, **kwargs):
    """Persist a WebhookEvent whose payload wraps data_object."""
    payload = build_event(event_type, data_object)
    return WebhookEventFactory(
        stripe_event_id=payload["id"],
        event_type=event_type,
        payload=payload,
        **kwargs,
    )
