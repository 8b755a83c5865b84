from django.urls import include, path

urlpatterns = [
    path("api/feed-orders/", include("feed_orders.urls")),
]
