from rest_framework import serializers

from orders.domain import Order

# Пустые строки и неположительные числа пропускаем: их отклоняет validate_order
# с конкретным сообщением. Здесь проверяется только структура и типы документа.


class StrictCharField(serializers.CharField):
    """Accepts only JSON strings; numbers are not coerced to text."""

    default_error_messages = {"not_a_string": "Must be a string."}

    def __init__(self, **kwargs):
        kwargs.setdefault("allow_blank", True)
        kwargs.setdefault("trim_whitespace", False)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        if not isinstance(data, str):
            self.fail("not_a_string")
        return super().to_internal_value(data)


class StrictIntegerField(serializers.IntegerField):
    """Accepts only JSON integers: no strings, floats or booleans."""

    def to_internal_value(self, data):
        if isinstance(data, bool) or not isinstance(data, int):
            self.fail("invalid")
        return super().to_internal_value(data)


class DeliverySerializer(serializers.Serializer):
    name = StrictCharField()
    phone = StrictCharField()
    zip = StrictCharField()
    city = StrictCharField()
    address = StrictCharField()
    region = StrictCharField()
    email = StrictCharField()


class PaymentSerializer(serializers.Serializer):
    transaction = StrictCharField()
    request_id = StrictCharField(required=False, default="")
    currency = StrictCharField()
    provider = StrictCharField()
    amount = StrictIntegerField()
    payment_dt = StrictIntegerField(required=False, default=0)
    bank = StrictCharField(required=False, default="")
    delivery_cost = StrictIntegerField(required=False, default=0)
    goods_total = StrictIntegerField(required=False, default=0)
    custom_fee = StrictIntegerField(required=False, default=0)


class ItemSerializer(serializers.Serializer):
    chrt_id = StrictIntegerField()
    track_number = StrictCharField(required=False, default="")
    price = StrictIntegerField()
    rid = StrictCharField()
    name = StrictCharField()
    sale = StrictIntegerField(required=False, default=0)
    size = StrictCharField(required=False, default="")
    total_price = StrictIntegerField(required=False, default=0)
    nm_id = StrictIntegerField(required=False, default=0)
    brand = StrictCharField()
    status = StrictIntegerField(required=False, default=0)


class OrderSerializer(serializers.Serializer):
    order_uid = StrictCharField()
    track_number = StrictCharField()
    entry = StrictCharField()
    delivery = DeliverySerializer()
    payment = PaymentSerializer()
    items = ItemSerializer(many=True, allow_empty=True)
    locale = StrictCharField(required=False, default="")
    internal_signature = StrictCharField(required=False, default="")
    customer_id = StrictCharField(required=False, default="")
    delivery_service = StrictCharField(required=False, default="")
    shardkey = StrictCharField(required=False, default="")
    sm_id = StrictIntegerField(required=False, default=0)
    date_created = StrictCharField(required=False, default="")
    oof_shard = StrictCharField(required=False, default="")

    def to_representation(self, instance):
        if isinstance(instance, Order):
            instance = instance.to_dict()
        return super().to_representation(instance)
