import json
import logging
from abc import ABC, abstractmethod

from django.db import DatabaseError, IntegrityError, transaction

from orders.domain import Order
from orders.exceptions import StoreConflict, StoreError
from orders.models import OrderRecord
from orders.serializers import OrderSerializer

logger = logging.getLogger(__name__)


class OrderStore(ABC):
    """Durable storage for orders, keyed by ``order_uid``.

    There is deliberately no update or delete: a stored order is final.
    """

    @abstractmethod
    def insert(self, order):
        """Persist a new order; raise ``StoreConflict`` if the key exists."""

    @abstractmethod
    def fetch(self, order_uid):
        """Return the stored order or ``None``; raise ``StoreError`` on failure."""


class DjangoOrderStore(OrderStore):
    def insert(self, order):
        order_data = json.dumps(order.to_dict())
        try:
            # отдельный atomic, чтобы IntegrityError не ломал внешнюю транзакцию
            with transaction.atomic():
                OrderRecord.objects.create(
                    order_uid=order.order_uid, order_data=order_data
                )
        except IntegrityError as e:
            raise StoreConflict(order.order_uid) from e
        except DatabaseError as e:
            raise StoreError(f"insert of order {order.order_uid} failed: {e}") from e

    def fetch(self, order_uid):
        try:
            order_data = (
                OrderRecord.objects.filter(pk=order_uid)
                .values_list("order_data", flat=True)
                .first()
            )
        except DatabaseError as e:
            raise StoreError(f"fetch of order {order_uid} failed: {e}") from e

        if order_data is None:
            return None

        try:
            document = json.loads(order_data)
        except ValueError as e:
            logger.error(f"Stored payload of order {order_uid} is not JSON: {e}")
            raise StoreError(f"order {order_uid} could not be decoded: {e}") from e

        # документ проверяется тем же сериализатором, что и входящий запрос
        serializer = OrderSerializer(data=document)
        if not serializer.is_valid():
            logger.error(
                f"Stored payload of order {order_uid} is corrupted: {serializer.errors}"
            )
            raise StoreError(f"order {order_uid} could not be decoded")
        return Order.from_dict(serializer.validated_data)
