from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.notifications"
    label = "notifications"

    def ready(self) -> None:
        from modules.notifications.handlers import (
            cancellation_processed_handler,
            cancellation_requested_handler,
            low_stock_handler,
            order_cancelled_handler,
            order_status_changed_handler,
        )
        from modules.orders.events import (
            CancellationProcessed,
            CancellationRequested,
            OrderCancelled,
            OrderStatusChanged,
        )
        from modules.products.events import LowStockDetected
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderCancelled, order_cancelled_handler)
        event_bus.subscribe(OrderStatusChanged, order_status_changed_handler)
        event_bus.subscribe(CancellationRequested, cancellation_requested_handler)
        event_bus.subscribe(CancellationProcessed, cancellation_processed_handler)
        event_bus.subscribe(LowStockDetected, low_stock_handler)
