"""
Domain errors raised by the store services and mapped to HTTP in the routers.

Engine errors (shared.lifecycle.IllegalTransitionError) are raised before any
write; the ones below come from the persistence layer itself.
"""

import uuid


class StoreError(Exception):
    """Base class for store errors."""


class NotFoundError(StoreError):
    def __init__(self, entity: str, entity_id: uuid.UUID) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConcurrentTransitionError(StoreError):
    """The row changed between our read and the compare-and-swap write."""

    def __init__(self, order_id: uuid.UUID, expected: str) -> None:
        super().__init__(
            f"Order {order_id} is no longer '{expected}'; it was changed by someone else"
        )
        self.order_id = order_id
        self.expected = expected


class AlreadyResolvedError(StoreError):
    def __init__(self, request_id: uuid.UUID) -> None:
        super().__init__(f"Service request {request_id} is already resolved")
        self.request_id = request_id


class DuplicateSlugError(StoreError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"Restaurant slug '{slug}' is already taken")
        self.slug = slug
