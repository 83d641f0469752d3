from prometheus_client import Counter, Gauge, Histogram

ORDERS_CREATED = Counter(
    "canteen_orders_created_total",
    "Orders committed with their stock reservation",
)

ORDER_REJECTIONS = Counter(
    "canteen_order_rejections_total",
    "Order creation requests rejected by a business rule",
    ["reason"],  # not_found | cross_canteen | insufficient_stock
)

PAYMENT_LINK_OUTCOMES = Counter(
    "canteen_payment_link_outcomes_total",
    "Payment link acquisition outcomes",
    ["outcome"],  # created | unconfigured | failed | circuit_open
)

GATEWAY_LATENCY = Histogram(
    "canteen_payment_gateway_duration_seconds",
    "Latency of Snap createTransaction calls",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0],
)

WEBHOOK_OUTCOMES = Counter(
    "canteen_webhook_notifications_total",
    "Payment notifications by reconciliation outcome",
    ["outcome"],  # applied | replay | ignored | invalid_signature | order_not_found
)

STOCK_RELEASED = Counter(
    "canteen_stock_released_units_total",
    "Stock units returned to menu items by compensation",
)

CIRCUIT_STATE = Gauge(
    "canteen_payment_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
)
