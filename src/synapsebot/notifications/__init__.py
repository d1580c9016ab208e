"""
Delivery of human-facing notices produced by background sweeps.

- **sink.py**: ``Notification`` and ``NotificationTarget`` value types and the
  ``NotificationSink`` interface the sweep scheduler depends on.

- **discord_sink.py**: ``DiscordNotificationSink``, which direct-messages the
  target user and falls back once to a channel, plus the embed builder.
"""

from synapsebot.notifications.sink import Notification, NotificationSink, NotificationTarget

__all__ = ["Notification", "NotificationSink", "NotificationTarget"]
