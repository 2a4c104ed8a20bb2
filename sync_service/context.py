import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class TenantContext:
    """The restaurant a synchronizer works for. Every store query and feed subscription takes one."""

    restaurant_id: uuid.UUID
