import copy
import json
import threading
from unittest.mock import patch

from django.db import OperationalError
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework import status

from orders.cache import OrderCache
from orders.domain import Order
from orders.exceptions import (
    DuplicateOrderError,
    OrderStorageError,
    OrderValidationError,
    StoreConflict,
    StoreError,
)
from orders.metrics import OrderMetrics
from orders.models import OrderRecord
from orders.services import OrderService, build_order_service
from orders.store import DjangoOrderStore, OrderStore
from orders.validation import validate_order

ORDER_PAYLOAD = {
    "order_uid": "b563feb7b2b84b6test",
    "track_number": "WBILMTESTTRACK",
    "entry": "WBIL",
    "delivery": {
        "name": "Test Testov",
        "phone": "+9720000000",
        "zip": "2639809",
        "city": "Kiryat Mozkin",
        "address": "Ploshad Mira 15",
        "region": "Kraiot",
        "email": "test@gmail.com",
    },
    "payment": {
        "transaction": "b563feb7b2b84b6test",
        "request_id": "",
        "currency": "USD",
        "provider": "wbpay",
        "amount": 1817,
        "payment_dt": 1637907727,
        "bank": "alpha",
        "delivery_cost": 1500,
        "goods_total": 317,
        "custom_fee": 0,
    },
    "items": [
        {
            "chrt_id": 9934930,
            "track_number": "WBILMTESTTRACK",
            "price": 453,
            "rid": "ab4219087a764ae0btest",
            "name": "Mascaras",
            "sale": 30,
            "size": "0",
            "total_price": 317,
            "nm_id": 2389212,
            "brand": "Vivienne Sabo",
            "status": 202,
        }
    ],
    "locale": "en",
    "internal_signature": "",
    "customer_id": "test",
    "delivery_service": "meest",
    "shardkey": "9",
    "sm_id": 99,
    "date_created": "2021-11-26T06:22:19Z",
    "oof_shard": "1",
}


def make_payload(**overrides):
    payload = copy.deepcopy(ORDER_PAYLOAD)
    payload.update(overrides)
    return payload


def make_order(**overrides):
    return Order.from_dict(make_payload(**overrides))


class FakeOrderStore(OrderStore):
    """Хранилище в памяти с тем же контрактом, что и DjangoOrderStore."""

    def __init__(self):
        self.rows = {}
        self.fail = False
        self.fetch_calls = 0
        self._lock = threading.Lock()

    def insert(self, order):
        if self.fail:
            raise StoreError("connection refused")
        with self._lock:
            if order.order_uid in self.rows:
                raise StoreConflict(order.order_uid)
            self.rows[order.order_uid] = order

    def fetch(self, order_uid):
        self.fetch_calls += 1
        if self.fail:
            raise StoreError("connection refused")
        return self.rows.get(order_uid)


class ValidateOrderTests(SimpleTestCase):
    """Тесты валидации заказа перед записью в хранилище."""

    def assertInvalid(self, order, reason):
        with self.assertRaises(OrderValidationError) as ctx:
            validate_order(order)
        self.assertEqual(ctx.exception.reason, reason)

    def test_valid_order_passes(self):
        validate_order(make_order())

    def test_header_fields_reported_one_by_one(self):
        self.assertInvalid(make_order(order_uid=""), "order_uid is required")
        self.assertInvalid(make_order(track_number=""), "track_number is required")
        self.assertInvalid(make_order(entry=""), "entry is required")

    def test_first_failure_wins(self):
        """Тест: при нескольких ошибках сообщается только первая."""
        payload = make_payload(order_uid="", items=[])
        payload["payment"]["amount"] = 0
        self.assertInvalid(Order.from_dict(payload), "order_uid is required")

    def test_each_delivery_field_is_required(self):
        for name in ("name", "phone", "zip", "city", "address", "region", "email"):
            payload = make_payload()
            payload["delivery"][name] = ""
            self.assertInvalid(
                Order.from_dict(payload), "All delivery fields are required"
            )

    def test_payment_amount_must_be_positive(self):
        for amount in (0, -5):
            payload = make_payload()
            payload["payment"]["amount"] = amount
            self.assertInvalid(
                Order.from_dict(payload),
                "All payment fields are required and amount must be positive",
            )

    def test_payment_strings_are_required(self):
        for name in ("transaction", "currency", "provider"):
            payload = make_payload()
            payload["payment"][name] = ""
            self.assertInvalid(
                Order.from_dict(payload),
                "All payment fields are required and amount must be positive",
            )

    def test_unvalidated_payment_numbers_are_carried(self):
        payload = make_payload()
        payload["payment"]["delivery_cost"] = -1
        payload["payment"]["custom_fee"] = -1
        validate_order(Order.from_dict(payload))

    def test_items_required(self):
        self.assertInvalid(make_order(items=[]), "At least one item is required")

    def test_any_bad_item_fails_order(self):
        """Тест: одна некорректная позиция отклоняет весь заказ."""
        bad_values = {"chrt_id": 0, "price": -1, "rid": "", "name": "", "brand": ""}
        for name, value in bad_values.items():
            payload = make_payload()
            bad_item = dict(payload["items"][0], **{name: value})
            payload["items"].append(bad_item)
            self.assertInvalid(
                Order.from_dict(payload),
                "All item fields are required and numeric fields must be positive",
            )


class OrderDomainTests(SimpleTestCase):
    def test_to_dict_returns_json_shape(self):
        self.assertEqual(make_order().to_dict(), ORDER_PAYLOAD)

    def test_optional_metadata_defaults(self):
        payload = make_payload()
        for name in ("locale", "customer_id", "sm_id", "oof_shard"):
            del payload[name]
        order = Order.from_dict(payload)
        self.assertEqual(order.locale, "")
        self.assertEqual(order.sm_id, 0)

    def test_missing_structure_is_rejected(self):
        payload = make_payload()
        del payload["delivery"]
        with self.assertRaises(KeyError):
            Order.from_dict(payload)
        with self.assertRaises(TypeError):
            Order.from_dict(make_payload(payment="cash"))

    def test_order_is_immutable(self):
        order = make_order()
        with self.assertRaises(AttributeError):
            order.order_uid = "other"


class OrderCacheTests(SimpleTestCase):
    def test_put_get_contains(self):
        cache = OrderCache()
        order = make_order()
        self.assertIsNone(cache.get(order.order_uid))
        self.assertFalse(cache.contains(order.order_uid))

        cache.put(order.order_uid, order)

        self.assertIs(cache.get(order.order_uid), order)
        self.assertIn(order.order_uid, cache)
        self.assertEqual(len(cache), 1)

    def test_overwrite_keeps_single_entry(self):
        cache = OrderCache()
        cache.put("X1", make_order(order_uid="X1", entry="A"))
        cache.put("X1", make_order(order_uid="X1", entry="B"))
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get("X1").entry, "B")

    def test_clear(self):
        cache = OrderCache()
        cache.put("X1", make_order(order_uid="X1"))
        cache.clear()
        self.assertEqual(len(cache), 0)
        self.assertIsNone(cache.get("X1"))

    def test_concurrent_readers_and_writers(self):
        """Тест: параллельные чтения и записи не теряют и не портят записи."""
        cache = OrderCache()
        orders = [make_order(order_uid=f"U{i}") for i in range(200)]
        errors = []

        def writer(chunk):
            for order in chunk:
                cache.put(order.order_uid, order)

        def reader():
            for order in orders:
                found = cache.get(order.order_uid)
                if found is not None and found.order_uid != order.order_uid:
                    errors.append(order.order_uid)

        threads = [
            threading.Thread(target=writer, args=(orders[i::4],)) for i in range(4)
        ]
        threads += [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual(errors, [])
        self.assertEqual(len(cache), len(orders))


class OrderServiceTests(SimpleTestCase):
    """Тесты ядра: порядок записи, обнаружение дублей, чтение с fallback."""

    def setUp(self):
        self.store = FakeOrderStore()
        self.cache = OrderCache()
        self.metrics = OrderMetrics()
        self.service = OrderService(self.store, self.cache, self.metrics)

    def sample(self, name, labels=None):
        return self.metrics.registry.get_sample_value(name, labels or {}) or 0.0

    def status_count(self, label):
        return self.sample("order_status_total", {"status": label})

    def test_create_then_get_round_trip(self):
        order = make_order()

        created = self.service.create(order)

        self.assertEqual(created, order)
        self.assertEqual(self.service.get(order.order_uid), order)
        self.assertIn(order.order_uid, self.store.rows)
        self.assertEqual(self.sample("orders_total"), 1)
        self.assertEqual(self.status_count("created"), 1)

    def test_cache_hit_does_not_touch_store(self):
        order = self.service.create(make_order())

        self.service.get(order.order_uid)

        self.assertEqual(self.store.fetch_calls, 0)
        self.assertEqual(self.sample("db_requests_total"), 0)

    def test_concrete_scenario(self):
        """Тест: создание X1, затем amount=0 -> ошибка валидации, затем повтор X1 -> дубль."""
        first = make_order(order_uid="X1", track_number="T1", entry="E")
        self.service.create(first)
        self.assertEqual(self.service.get("X1"), first)

        payload = make_payload(order_uid="X2")
        payload["payment"]["amount"] = 0
        with self.assertRaises(OrderValidationError):
            self.service.create(Order.from_dict(payload))

        with self.assertRaises(DuplicateOrderError):
            self.service.create(first)

    def test_invalid_order_writes_nothing(self):
        with self.assertRaises(OrderValidationError):
            self.service.create(make_order(entry=""))

        self.assertEqual(self.store.rows, {})
        self.assertEqual(len(self.cache), 0)
        self.assertEqual(self.status_count("invalid"), 1)

    def test_duplicate_rejected_from_warm_cache_without_store(self):
        order = self.service.create(make_order())
        self.store.fail = True

        with self.assertRaises(DuplicateOrderError):
            self.service.create(order)
        self.assertEqual(self.status_count("duplicate"), 1)

    def test_duplicate_rejected_by_store_when_cache_cold(self):
        """Тест: после сброса кэша дубль всё равно отклоняется хранилищем."""
        order = self.service.create(make_order())
        self.cache.clear()

        with self.assertRaises(DuplicateOrderError):
            self.service.create(make_order(entry="OTHER"))

        self.assertEqual(len(self.cache), 0)
        self.assertEqual(self.store.rows[order.order_uid].entry, order.entry)
        self.assertEqual(self.status_count("duplicate"), 1)

    def test_storage_failure_on_create(self):
        self.store.fail = True

        with self.assertRaises(OrderStorageError):
            self.service.create(make_order())

        self.assertEqual(len(self.cache), 0)
        self.assertEqual(self.status_count("db_error"), 1)
        self.assertEqual(self.sample("orders_total"), 0)

    def test_get_unknown_returns_none_cold_and_warm(self):
        self.assertIsNone(self.service.get("missing"))
        self.service.create(make_order())
        self.assertIsNone(self.service.get("missing"))
        self.assertEqual(self.status_count("not_found"), 2)
        self.assertEqual(self.sample("db_requests_total"), 2)

    def test_cold_cache_falls_back_to_store_and_warms(self):
        order = self.service.create(make_order())
        self.cache.clear()

        self.assertEqual(self.service.get(order.order_uid), order)
        self.assertEqual(self.store.fetch_calls, 1)
        self.assertIn(order.order_uid, self.cache)

        self.service.get(order.order_uid)
        self.assertEqual(self.store.fetch_calls, 1)

    def test_storage_failure_on_get(self):
        self.store.fail = True

        with self.assertRaises(OrderStorageError):
            self.service.get("X1")
        self.assertEqual(self.status_count("db_error"), 1)

    def test_concurrent_create_same_uid_single_winner(self):
        """Тест: при гонке двух create один побеждает, второй получает дубль."""
        barrier = threading.Barrier(2, timeout=5)
        store = self.store
        original_insert = store.insert

        def insert_after_both_checked(order):
            barrier.wait()
            original_insert(order)

        store.insert = insert_after_both_checked
        results = {}

        def create(label, order):
            try:
                self.service.create(order)
                results[label] = "created"
            except DuplicateOrderError:
                results[label] = "duplicate"

        orders = {
            "a": make_order(order_uid="RACE", entry="A"),
            "b": make_order(order_uid="RACE", entry="B"),
        }
        threads = [
            threading.Thread(target=create, args=(label, order))
            for label, order in orders.items()
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        self.assertEqual(sorted(results.values()), ["created", "duplicate"])
        winner = next(label for label, result in results.items() if result == "created")
        self.assertEqual(self.cache.get("RACE"), orders[winner])
        self.assertEqual(self.store.rows["RACE"], orders[winner])


class DjangoOrderStoreTests(TestCase):
    def setUp(self):
        self.store = DjangoOrderStore()

    def test_insert_and_fetch(self):
        order = make_order()
        self.store.insert(order)

        self.assertTrue(OrderRecord.objects.filter(pk=order.order_uid).exists())
        self.assertEqual(self.store.fetch(order.order_uid), order)

    def test_fetch_missing_returns_none(self):
        self.assertIsNone(self.store.fetch("missing"))

    def test_insert_conflict(self):
        """Тест: повторная вставка того же order_uid не перезаписывает строку."""
        order = make_order()
        self.store.insert(order)

        with self.assertRaises(StoreConflict):
            self.store.insert(make_order(entry="OTHER"))

        self.assertEqual(OrderRecord.objects.count(), 1)
        self.assertEqual(self.store.fetch(order.order_uid).entry, order.entry)

    def test_corrupted_payload(self):
        OrderRecord.objects.create(order_uid="BROKEN", order_data="{not json")
        OrderRecord.objects.create(order_uid="SHAPE", order_data='{"order_uid": "SHAPE"}')

        for order_uid in ("BROKEN", "SHAPE"):
            with self.assertRaises(StoreError):
                self.store.fetch(order_uid)

    def test_payload_with_wrong_types_is_corrupted(self):
        """Тест: JSON разбирается, но типы полей неверные -> ошибка хранилища."""
        broken = {}
        payload = make_payload()
        payload["payment"]["amount"] = "not-a-number"
        broken["AMOUNT"] = payload
        for name, value in {"chrt_id": "x", "price": None, "name": [], "brand": {}}.items():
            payload = make_payload()
            payload["items"][0][name] = value
            broken[f"ITEM_{name}"] = payload

        for order_uid, payload in broken.items():
            OrderRecord.objects.create(
                order_uid=order_uid, order_data=json.dumps(payload)
            )
            with self.assertRaises(StoreError):
                self.store.fetch(order_uid)

    def test_service_does_not_cache_badly_typed_row(self):
        payload = make_payload(order_uid="BADTYPE")
        payload["payment"]["amount"] = "not-a-number"
        OrderRecord.objects.create(order_uid="BADTYPE", order_data=json.dumps(payload))
        service = build_order_service(store=self.store)

        with self.assertRaises(OrderStorageError):
            service.get("BADTYPE")

        self.assertNotIn("BADTYPE", service.cache)
        self.assertEqual(
            service.metrics.registry.get_sample_value(
                "order_status_total", {"status": "db_error"}
            ),
            1.0,
        )

    def test_long_order_uid_is_stored(self):
        """Тест: order_uid хранится в текстовом ключе без ограничения длины."""
        self.assertEqual(OrderRecord._meta.pk.get_internal_type(), "TextField")
        order = make_order(order_uid="U" * 300)

        self.store.insert(order)

        self.assertEqual(self.store.fetch("U" * 300), order)

    def test_database_errors_become_store_errors(self):
        with patch.object(
            OrderRecord.objects, "create", side_effect=OperationalError("db down")
        ):
            with self.assertRaises(StoreError) as ctx:
                self.store.insert(make_order())
        self.assertNotIsInstance(ctx.exception, StoreConflict)

        with patch.object(
            OrderRecord.objects, "filter", side_effect=OperationalError("db down")
        ):
            with self.assertRaises(StoreError):
                self.store.fetch("X1")


class OrderAPITests(TestCase):
    """Тесты для REST API сервиса заказов."""

    def setUp(self):
        self.service = build_order_service()
        patcher = patch("orders.views.get_order_service", return_value=self.service)
        patcher.start()
        self.addCleanup(patcher.stop)

    def post_order(self, payload):
        return self.client.post(
            reverse("order-create"), payload, content_type="application/json"
        )

    def status_count(self, label):
        value = self.service.metrics.registry.get_sample_value(
            "order_status_total", {"status": label}
        )
        return value or 0.0

    def test_create_order_success(self):
        """
        Тест: успешное создание заказа через POST /order.
        Проверяем:
        1. Возвращается статус 201 CREATED и сообщение с order_uid.
        2. Заказ записан в БД и в кэш.
        """
        response = self.post_order(ORDER_PAYLOAD)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(
            response.json(),
            f"Order with id {ORDER_PAYLOAD['order_uid']} created successfully",
        )
        self.assertTrue(
            OrderRecord.objects.filter(pk=ORDER_PAYLOAD["order_uid"]).exists()
        )
        self.assertIn(ORDER_PAYLOAD["order_uid"], self.service.cache)

    def test_get_order_returns_created_document(self):
        self.post_order(ORDER_PAYLOAD)

        url = reverse("order-detail", kwargs={"order_id": ORDER_PAYLOAD["order_uid"]})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), ORDER_PAYLOAD)

    def test_get_order_after_cache_reset(self):
        """Тест: после «перезапуска» (сброса кэша) заказ читается из БД."""
        self.post_order(ORDER_PAYLOAD)
        self.service.cache.clear()

        url = reverse("order-detail", kwargs={"order_id": ORDER_PAYLOAD["order_uid"]})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.json(), ORDER_PAYLOAD)

    def test_get_order_not_found(self):
        url = reverse("order-detail", kwargs={"order_id": "missing"})
        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.json(), {"error": "Order not found"})
        self.assertEqual(self.status_count("not_found"), 1)

    def test_invalid_order_rejected(self):
        payload = make_payload()
        payload["payment"]["amount"] = 0

        response = self.post_order(payload)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            response.json(),
            {"error": "All payment fields are required and amount must be positive"},
        )
        self.assertEqual(OrderRecord.objects.count(), 0)
        self.assertEqual(len(self.service.cache), 0)

    def test_malformed_document_rejected(self):
        payload = make_payload()
        del payload["delivery"]

        response = self.post_order(payload)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("delivery", response.json()["details"])
        self.assertEqual(OrderRecord.objects.count(), 0)
        self.assertEqual(self.status_count("invalid"), 1)

    def test_duplicate_order_conflict(self):
        self.post_order(ORDER_PAYLOAD)

        response = self.post_order(ORDER_PAYLOAD)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.json(), {"error": "Order already exists"})

    def test_duplicate_detected_by_database_with_cold_cache(self):
        DjangoOrderStore().insert(make_order())

        response = self.post_order(ORDER_PAYLOAD)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(len(self.service.cache), 0)

    def test_storage_failure_on_create(self):
        with patch.object(
            self.service.store, "insert", side_effect=StoreError("db down")
        ):
            response = self.post_order(ORDER_PAYLOAD)

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json(), {"error": "Database error"})
        self.assertEqual(len(self.service.cache), 0)

    def test_corrupted_row_is_server_error(self):
        OrderRecord.objects.create(order_uid="BROKEN", order_data="{not json")

        response = self.client.get(reverse("order-detail", kwargs={"order_id": "BROKEN"}))

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json(), {"error": "Database error"})

    def test_badly_typed_row_is_server_error(self):
        payload = make_payload(order_uid="BADTYPE")
        payload["items"][0]["chrt_id"] = "abc"
        OrderRecord.objects.create(order_uid="BADTYPE", order_data=json.dumps(payload))

        response = self.client.get(reverse("order-detail", kwargs={"order_id": "BADTYPE"}))

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.json(), {"error": "Database error"})
        self.assertEqual(self.status_count("db_error"), 1)
        self.assertNotIn("BADTYPE", self.service.cache)

    def test_values_of_wrong_type_are_not_coerced(self):
        """Тест: число вместо строки и строка вместо числа отклоняются, а не приводятся."""
        payloads = [make_payload(order_uid=123)]
        for name, value in {"amount": "100", "payment_dt": 1.5}.items():
            payload = make_payload()
            payload["payment"][name] = value
            payloads.append(payload)
        for name, value in {"price": 10.0, "chrt_id": True}.items():
            payload = make_payload()
            payload["items"][0][name] = value
            payloads.append(payload)

        for payload in payloads:
            response = self.post_order(payload)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.assertEqual(OrderRecord.objects.count(), 0)
        self.assertEqual(self.status_count("invalid"), len(payloads))

    def test_health_check(self):
        response = self.client.get(reverse("health"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.content, b"OK")

    def test_metrics_exposition(self):
        self.service.create(make_order())

        response = self.client.get(reverse("metrics"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        body = response.content.decode("utf-8")
        self.assertIn("orders_total 1.0", body)
        self.assertIn('order_status_total{status="created"} 1.0', body)
        self.assertIn("db_requests_total", body)
