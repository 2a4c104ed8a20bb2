from prometheus_client import Counter

ORDERS_CREATED = Counter(
    "orders_created_total",
    "Orders placed through the store service",
    ["payment_method"],  # cash | online
)

ORDER_TRANSITIONS = Counter(
    "order_transitions_total",
    "Order status transitions",
    ["action", "outcome"],  # action: advance | cancel | reject | set_status
)

SERVICE_REQUESTS = Counter(
    "service_requests_total",
    "Service request lifecycle events",
    ["action"],  # created | resolved
)
