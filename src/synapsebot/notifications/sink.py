from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Tuple

COLOUR_SUCCESS = 0x00FF00
COLOUR_WARNING = 0xFFA500
COLOUR_ERROR = 0xFF0000


@dataclass(frozen=True)
class NotificationTarget:
    """
    Where a notification should go.

    Attributes:
        user_id: User to direct-message first, if any.
        channel_id: Channel used when there is no user, or as the single
            fallback when the direct message fails.
        guild_id: Guild the channel belongs to, used only for logging.
    """
    user_id: int | None = None
    channel_id: int | None = None
    guild_id: int | None = None

    def describe(self) -> str:
        parts = []
        if self.user_id is not None:
            parts.append(f"user={self.user_id}")
        if self.channel_id is not None:
            parts.append(f"channel={self.channel_id}")
        return ", ".join(parts) or "nowhere"


@dataclass
class Notification:
    """
    A human-readable message about a fired record.

    Attributes:
        title: Embed title.
        description: Embed body.
        fields: ``(name, value)`` pairs rendered as inline embed fields.
        colour: Embed colour as an RGB integer.
        footer: Optional embed footer.
        timestamp: Optional embed timestamp.
        fallback_title: Title used when the message lands in the fallback
            channel instead of a DM. Defaults to ``"<title> (DM Failed)"``.
        fallback_mention: Whether the fallback channel message pings the user.
    """
    title: str
    description: str = ""
    fields: List[Tuple[str, str]] = field(default_factory=list)
    colour: int = COLOUR_SUCCESS
    footer: str | None = None
    timestamp: datetime | None = None
    fallback_title: str | None = None
    fallback_mention: bool = True


class NotificationSink(ABC):
    """Delivers notifications; never raises on delivery failure."""

    @abstractmethod
    async def deliver(self, target: NotificationTarget, notification: Notification) -> bool:
        """
        Deliver ``notification`` to ``target``.

        Tries the user's direct messages first, then the channel once.
        Returns ``False`` when nothing could be delivered; callers log it and
        carry on.
        """
