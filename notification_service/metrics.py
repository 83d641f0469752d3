from prometheus_client import Counter, Histogram

NOTIFICATIONS = Counter(
    "canteen_notifications_sent_total",
    "Notifications produced from order events",
    ["kind"],  # paid | payment_cancelled | order_status | parse_error | unknown_topic
)

EVENT_LAG = Histogram(
    "canteen_notification_event_lag_seconds",
    "Delay between an order event occurring and its notification being produced",
    ["topic"],
    buckets=[0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)
