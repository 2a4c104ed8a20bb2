from prometheus_client import Counter, Gauge

SYNC_EVENTS = Counter(
    "sync_events_total",
    "Change events handled by the synchronizer",
    ["table", "outcome"],  # applied | duplicate | stale | outdated | ignored | foreign_tenant | discarded | parse_error | error
)

NOTIFICATIONS = Counter(
    "notifications_sent_total",
    "Notifications emitted to the presentation layer",
    ["kind", "outcome"],  # kind: new_order | service_request | status_changed
)

RECONCILIATIONS = Counter(
    "sync_reconciliations_total",
    "Full snapshot fetches",
    ["outcome"],  # applied | discarded | failed
)

SUBSCRIPTION_STATE = Gauge(
    "sync_subscription_state",
    "Subscription state per tenant (0=disconnected, 1=subscribing, 2=subscribed)",
    ["restaurant_id"],
)
