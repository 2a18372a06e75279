from app.services.notifications.notification_dispatcher import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
