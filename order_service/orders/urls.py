from django.urls import path

from orders.views import OrderCreateView, OrderDetailView, health_check, metrics

urlpatterns = [
    path("order", OrderCreateView.as_view(), name="order-create"),
    path("order/<str:order_id>", OrderDetailView.as_view(), name="order-detail"),
    path("health", health_check, name="health"),
    path("metrics", metrics, name="metrics"),
]
