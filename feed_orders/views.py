"""
API Layer — Feed Order Endpoints (Django REST Framework)

Thin controllers: each view coerces the request payload with a serializer,
delegates to one application use case and maps domain exceptions to HTTP
responses. No business rules live here.

Exception mapping:

- ValidationError            -> 400
- NotFoundError              -> 404
- InvalidTransitionError     -> 409
- ConcurrencyConflictError   -> 409 (client should retry with fresh state;
                                also raised when the database refuses a lock)
- InvalidPaymentAmountError  -> 422
- IdempotencyReplay          -> 200 with the current order
- DatabaseError              -> 500 with a generic body
"""

import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from feed_orders.application import use_cases
from feed_orders.domain.exceptions import (
    ConcurrencyConflictError,
    FeedOrderError,
    IdempotencyReplay,
    InvalidPaymentAmountError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from feed_orders.serializers import (
    DeliveryInputSerializer,
    DispatchSerializer,
    DraftUpdateSerializer,
    FeedOrderSerializer,
    OrderCreateSerializer,
    PaymentHistorySerializer,
    PaymentInputSerializer,
    RequirementInputSerializer,
    RequirementPreviewSerializer,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
    InvalidPaymentAmountError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def error_response(exc):
    body = {"error": str(exc), "code": exc.code}
    if isinstance(exc, ValidationError):
        body["field"] = exc.field
    return Response(body, status=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST))


def storage_error_response():
    return Response(
        {"error": "The request could not be completed. Please try again later."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class FeedOrderAPIView(APIView):
    """Runs a use case and turns domain and storage failures into responses."""

    def run(self, operation, *args, **kwargs):
        try:
            return operation(*args, **kwargs), None
        except FeedOrderError as exc:
            return None, error_response(exc)
        except DatabaseError:
            logger.exception("Storage failure in %s", operation.__name__)
            return None, storage_error_response()


class RequirementPreviewView(FeedOrderAPIView):
    """
    POST /api/feed-orders/preview/

    Computes the requirement for the submitted parameters. Nothing is saved.
    """

    def post(self, request):
        serializer = RequirementInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        preview, error = self.run(use_cases.preview_requirement, **serializer.validated_data)
        if error:
            return error
        return Response(RequirementPreviewSerializer(preview).data, status=status.HTTP_200_OK)


class FeedOrderListCreateView(FeedOrderAPIView):
    """
    GET  /api/feed-orders/?status=<STATUS>
    POST /api/feed-orders/
    """

    def get(self, request):
        orders, error = self.run(use_cases.list_orders, status=request.query_params.get("status"))
        if error:
            return error
        return Response(FeedOrderSerializer(orders, many=True).data)

    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        order, error = self.run(use_cases.create_order, **serializer.validated_data)
        if error:
            return error
        return Response(FeedOrderSerializer(order).data, status=status.HTTP_201_CREATED)


class FeedOrderDetailView(FeedOrderAPIView):
    """
    GET   /api/feed-orders/<id>/
    PATCH /api/feed-orders/<id>/   (supplier_phone and notes of DRAFT orders)
    """

    def get(self, request, order_id):
        order, error = self.run(use_cases.get_order, order_id)
        if error:
            return error
        return Response(FeedOrderSerializer(order).data)

    def patch(self, request, order_id):
        serializer = DraftUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        order, error = self.run(use_cases.update_draft_order, order_id, **serializer.validated_data)
        if error:
            return error
        return Response(FeedOrderSerializer(order).data)


class DispatchOrderView(FeedOrderAPIView):
    """
    GET  /api/feed-orders/<id>/dispatch/   message and link only, no state change
    POST /api/feed-orders/<id>/dispatch/   DRAFT -> ORDERED, returns the message and link
    """

    def get(self, request, order_id):
        order, error = self.run(use_cases.get_order, order_id)
        if error:
            return error
        dispatch, error = self.run(use_cases.build_order_dispatch, order)
        if error:
            return error
        return Response(DispatchSerializer(dispatch).data)

    def post(self, request, order_id):
        order, error = self.run(use_cases.dispatch_order, order_id)
        if error:
            return error
        dispatch, error = self.run(use_cases.build_order_dispatch, order)
        if error:
            return error
        return Response({
            "order": FeedOrderSerializer(order).data,
            "dispatch": DispatchSerializer(dispatch).data,
        })


class ConfirmDeliveryView(FeedOrderAPIView):
    """POST /api/feed-orders/<id>/confirm-delivery/"""

    def post(self, request, order_id):
        serializer = DeliveryInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        order, error = self.run(use_cases.confirm_delivery, order_id, **serializer.validated_data)
        if error:
            return error
        return Response(FeedOrderSerializer(order).data)


class LifecycleActionView(FeedOrderAPIView):
    """POST endpoints that move an order forward without a payload."""

    transition = None

    def post(self, request, order_id):
        order, error = self.run(self.transition, order_id)
        if error:
            return error
        return Response(FeedOrderSerializer(order).data)


class StartFeedingView(LifecycleActionView):
    """POST /api/feed-orders/<id>/start-feeding/"""

    transition = staticmethod(use_cases.start_feeding)


class CompleteOrderView(LifecycleActionView):
    """POST /api/feed-orders/<id>/complete/"""

    transition = staticmethod(use_cases.complete_order)


class CancelOrderView(LifecycleActionView):
    """POST /api/feed-orders/<id>/cancel/"""

    transition = staticmethod(use_cases.cancel_order)


class PaymentView(FeedOrderAPIView):
    """
    GET  /api/feed-orders/<id>/payments/
    POST /api/feed-orders/<id>/payments/

    A repeated idempotency_key answers 200 with the current order instead of
    recording the payment twice.
    """

    def get(self, request, order_id):
        history, error = self.run(use_cases.get_payment_history, order_id)
        if error:
            return error
        return Response(PaymentHistorySerializer(history).data)

    def post(self, request, order_id):
        serializer = PaymentInputSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            order, error = self.run(use_cases.record_payment, order_id, **serializer.validated_data)
        except IdempotencyReplay:
            order, error = self.run(use_cases.get_order, order_id)
            if error:
                return error
            return Response(
                {"message": "Payment already recorded.", "order": FeedOrderSerializer(order).data},
                status=status.HTTP_200_OK,
            )

        if error:
            return error
        return Response(FeedOrderSerializer(order).data, status=status.HTTP_201_CREATED)
