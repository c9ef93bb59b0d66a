"""
simulation.py — Log-only provider for development.

Default SMS provider when no gateway is configured: every send "succeeds"
and is written to the log so the full alert flow can be exercised locally.
"""

from __future__ import annotations

import logging
import uuid

from backend.app.core.logging_config import mask_phone
from backend.app.emergency.channels.base import MessagingProvider
from backend.app.emergency.models import ChannelType

logger = logging.getLogger(__name__)


class SimulatedProvider(MessagingProvider):

    name = "simulation"

    def __init__(self, channel: ChannelType = ChannelType.SMS):
        self.channel = channel

    @property
    def is_initialized(self) -> bool:
        return True

    async def _send(self, destination: str, body: str) -> str:
        logger.info(
            "[SIM/%s] → %s: %d chars → '%s'",
            self.channel.value,
            mask_phone(destination),
            len(body),
            body[:80] + ("..." if len(body) > 80 else ""),
            extra={"provider": self.name, "channel": self.channel.value},
        )
        return f"SIM-{uuid.uuid4().hex[:10]}"
