"""
base.py — Common interface of messaging providers.
"""

from __future__ import annotations

import abc

from backend.app.core.errors import ProviderUnavailable
from backend.app.emergency.models import ChannelType


class MessagingProvider(abc.ABC):
    """
    A configured messaging backend.

    Subclasses set ``name`` and ``channel`` and implement ``_send``. A provider
    without credentials reports ``is_initialized == False`` and is never
    asked to send; the dispatcher short-circuits the whole channel instead.
    """

    name: str = "provider"
    channel: ChannelType = ChannelType.SMS

    @property
    @abc.abstractmethod
    def is_initialized(self) -> bool:
        ...

    @property
    def not_initialized_reason(self) -> str:
        return f"{self.name} not initialized"

    def address(self, phone: str) -> str:
        """Destination string for a normalized phone number."""
        return phone

    async def send(self, phone: str, body: str) -> str:
        """Send ``body`` to a normalized phone. Returns the provider message id."""
        if not self.is_initialized:
            raise ProviderUnavailable(self.name, self.not_initialized_reason)
        return await self._send(self.address(phone), body)

    @abc.abstractmethod
    async def _send(self, destination: str, body: str) -> str:
        ...

    async def aclose(self) -> None:
        """Release provider resources (no-op by default)."""
        return None

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} name={self.name} channel={self.channel.value} "
            f"initialized={self.is_initialized}>"
        )
