class OrderServiceError(Exception):
    """Base class for failures reported by the order service."""


class OrderValidationError(OrderServiceError):
    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class DuplicateOrderError(OrderServiceError):
    def __init__(self, order_uid):
        super().__init__(f"Order with UID {order_uid} already exists")
        self.order_uid = order_uid


class OrderStorageError(OrderServiceError):
    """The durable store failed; details are logged, never returned."""


class StoreError(Exception):
    """Raised by the durable store adapter."""


class StoreConflict(StoreError):
    """The order_uid is already present in the durable store."""
