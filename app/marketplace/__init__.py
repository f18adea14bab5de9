"""
Marketplace app: merchants, buyers, orders and the money rules around them.

Related apps:
    - settlements: turns Stripe events into orders here and pays merchants out
    - notifications: order confirmations and merchant alerts

Usage:
    from marketplace.fees import compute_breakdown
    from marketplace.services import OrderMaterializer, TierReconciler

    breakdown = compute_breakdown(product_subtotal=600, delivery_fee=0)
    order = OrderMaterializer.materialize(intent, breakdown, "pi_123")
"""
