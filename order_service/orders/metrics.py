from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

ORDER_STATUSES = ("invalid", "duplicate", "db_error", "created", "not_found")


class OrderMetrics:
    """Counters of the order service, registered on their own registry.

    Each instance owns a ``CollectorRegistry`` unless one is passed in, so
    several services (tests) can live in one process without name clashes.

    Exposed names: ``orders_total``, ``db_requests_total`` and
    ``order_status_total{status=...}``. prometheus_client always appends
    ``_total`` to counters, so ``order_status`` is published as
    ``order_status_total``.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.orders_total = Counter(
            "orders_total", "Total number of orders", registry=self.registry
        )
        self.db_requests_total = Counter(
            "db_requests_total",
            "Total number of requests to the database",
            registry=self.registry,
        )
        self.order_status = Counter(
            "order_status", "Status of orders", ["status"], registry=self.registry
        )

    def order_created(self):
        self.orders_total.inc()
        self.status("created")

    def db_request(self):
        self.db_requests_total.inc()

    def status(self, status):
        if status not in ORDER_STATUSES:
            raise ValueError(f"unknown order status label: {status}")
        self.order_status.labels(status=status).inc()

    def render(self):
        return generate_latest(self.registry)
