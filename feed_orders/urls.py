from django.urls import path

from .views import (
    CancelOrderView,
    CompleteOrderView,
    ConfirmDeliveryView,
    DispatchOrderView,
    FeedOrderDetailView,
    FeedOrderListCreateView,
    PaymentView,
    RequirementPreviewView,
    StartFeedingView,
)

urlpatterns = [
    path("", FeedOrderListCreateView.as_view(), name="feed-order-list"),
    path("preview/", RequirementPreviewView.as_view(), name="feed-order-preview"),
    path("<int:order_id>/", FeedOrderDetailView.as_view(), name="feed-order-detail"),
    path("<int:order_id>/dispatch/", DispatchOrderView.as_view(), name="feed-order-dispatch"),
    path("<int:order_id>/confirm-delivery/", ConfirmDeliveryView.as_view(), name="feed-order-confirm-delivery"),
    path("<int:order_id>/start-feeding/", StartFeedingView.as_view(), name="feed-order-start-feeding"),
    path("<int:order_id>/complete/", CompleteOrderView.as_view(), name="feed-order-complete"),
    path("<int:order_id>/cancel/", CancelOrderView.as_view(), name="feed-order-cancel"),
    path("<int:order_id>/payments/", PaymentView.as_view(), name="feed-order-payments"),
]
