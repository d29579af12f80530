"""
In-app notifications: subscription reminders and operator broadcasts.
"""

from dineops.services.notifications.emitter import BROADCAST_SENDER, NotificationEmitter

__all__ = ["NotificationEmitter", "BROADCAST_SENDER"]
