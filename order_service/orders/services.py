import logging
import threading

from orders.cache import OrderCache
from orders.exceptions import (
    DuplicateOrderError,
    OrderStorageError,
    OrderValidationError,
    StoreConflict,
    StoreError,
)
from orders.metrics import OrderMetrics
from orders.store import DjangoOrderStore
from orders.validation import validate_order

logger = logging.getLogger(__name__)

# Один сервис на процесс, общий для всех потоков
_service = None
_service_lock = threading.Lock()


class OrderService:
    """Create and read orders through the cache and the durable store.

    The store is written before the cache and read after it. The store's
    primary key, not the cache, decides whether an order is a duplicate.
    """

    def __init__(self, store, cache, metrics):
        self.store = store
        self.cache = cache
        self.metrics = metrics

    def create(self, order):
        try:
            validate_order(order)
        except OrderValidationError as e:
            logger.warning(f"Invalid order data: {e.reason}")
            self.metrics.status("invalid")
            raise

        if self.cache.contains(order.order_uid):
            logger.warning(f"Order with UID {order.order_uid} already exists")
            self.metrics.status("duplicate")
            raise DuplicateOrderError(order.order_uid)

        try:
            self.store.insert(order)
        except StoreConflict as e:
            logger.warning(f"Order with UID {order.order_uid} already exists in database")
            self.metrics.status("duplicate")
            raise DuplicateOrderError(order.order_uid) from e
        except StoreError as e:
            logger.error(f"Failed to save order to database: {e}")
            self.metrics.status("db_error")
            raise OrderStorageError("Database error") from e

        self.cache.put(order.order_uid, order)
        logger.info(f"Created new order with UID: {order.order_uid}")
        self.metrics.order_created()
        return order

    def get(self, order_uid):
        order = self.cache.get(order_uid)
        if order is not None:
            logger.info(f"Retrieved order with UID: {order_uid}")
            return order

        self.metrics.db_request()
        try:
            order = self.store.fetch(order_uid)
        except StoreError as e:
            logger.error(f"Database error: {e}")
            self.metrics.status("db_error")
            raise OrderStorageError("Database error") from e

        if order is None:
            logger.warning(f"Order with UID {order_uid} not found")
            self.metrics.status("not_found")
            return None

        self.cache.put(order_uid, order)
        logger.info(f"Retrieved order with UID {order_uid} from database")
        return order


def build_order_service(store=None, cache=None, metrics=None):
    return OrderService(
        store=store if store is not None else DjangoOrderStore(),
        cache=cache if cache is not None else OrderCache(),
        metrics=metrics if metrics is not None else OrderMetrics(),
    )


def get_order_service():
    global _service
    with _service_lock:
        if _service is None:
            _service = build_order_service()
    return _service
