from orders.exceptions import OrderValidationError

DELIVERY_FIELDS = ("name", "phone", "zip", "city", "address", "region", "email")


def validate_order(order):
    """Reject orders that must not reach the durable store.

    Checks run in a fixed order and stop at the first failure, so exactly one
    reason is reported.
    """
    if not order.order_uid:
        raise OrderValidationError("order_uid is required")
    if not order.track_number:
        raise OrderValidationError("track_number is required")
    if not order.entry:
        raise OrderValidationError("entry is required")

    if not all(getattr(order.delivery, name) for name in DELIVERY_FIELDS):
        raise OrderValidationError("All delivery fields are required")

    payment = order.payment
    if (
        not payment.transaction
        or not payment.currency
        or not payment.provider
        or payment.amount <= 0
    ):
        raise OrderValidationError(
            "All payment fields are required and amount must be positive"
        )

    if not order.items:
        raise OrderValidationError("At least one item is required")

    for item in order.items:
        if (
            item.chrt_id <= 0
            or item.price <= 0
            or not item.rid
            or not item.name
            or not item.brand
        ):
            raise OrderValidationError(
                "All item fields are required and numeric fields must be positive"
            )
