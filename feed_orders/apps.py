from django.apps import AppConfig


class FeedOrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "feed_orders"
    verbose_name = "Feed orders"
