"""
Shared Messaging Infrastructure
Post-commit tenant notifications
"""
from src.shared.infrastructure.messaging.notification_sink import NotificationSink

__all__ = ["NotificationSink"]
