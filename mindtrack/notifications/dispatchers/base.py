"""
Email collaborator contract.

The notification service renders nothing itself: it hands a template
kind, a recipient address and a payload to an ``EmailSender`` and reads
back a bool.  Adding another provider is one subclass plus one line in
mindtrack.setup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class EmailSender(ABC):

    @abstractmethod
    async def send(
        self, template_kind: str, recipient: str, payload: dict[str, Any]
    ) -> bool:
        """Deliver one email.  Must not raise; return False on failure."""
