import logging

from django.http import HttpResponse
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.domain import Order
from orders.exceptions import (
    DuplicateOrderError,
    OrderStorageError,
    OrderValidationError,
)
from orders.serializers import OrderSerializer
from orders.services import get_order_service

logger = logging.getLogger(__name__)


class OrderCreateView(APIView):
    def post(self, request, *args, **kwargs):
        service = get_order_service()

        serializer = OrderSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Malformed order document: {serializer.errors}")
            service.metrics.status("invalid")
            return Response(
                {"error": "Invalid order document", "details": serializer.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        order = Order.from_dict(serializer.validated_data)
        try:
            service.create(order)
        except OrderValidationError as e:
            return Response({"error": e.reason}, status=status.HTTP_400_BAD_REQUEST)
        except DuplicateOrderError:
            return Response(
                {"error": "Order already exists"}, status=status.HTTP_409_CONFLICT
            )
        except OrderStorageError:
            return Response(
                {"error": "Database error"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(
            f"Order with id {order.order_uid} created successfully",
            status=status.HTTP_201_CREATED,
        )


class OrderDetailView(APIView):
    def get(self, request, order_id, *args, **kwargs):
        try:
            order = get_order_service().get(order_id)
        except OrderStorageError:
            return Response(
                {"error": "Database error"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        if order is None:
            return Response(
                {"error": "Order not found"}, status=status.HTTP_404_NOT_FOUND
            )

        serializer = OrderSerializer(order)
        return Response(serializer.data)


def health_check(request):
    return HttpResponse("OK", content_type="text/plain")


def metrics(request):
    service_metrics = get_order_service().metrics
    return HttpResponse(service_metrics.render(), content_type=service_metrics.content_type)
