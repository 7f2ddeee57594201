from django.db import models


class OrderRecord(models.Model):
    order_uid = models.TextField(primary_key=True)
    # полный документ заказа в JSON, схема документа не зашита в таблицу
    order_data = models.TextField()

    class Meta:
        db_table = "orders"

    def __str__(self):
        return f"Order {self.order_uid}"
