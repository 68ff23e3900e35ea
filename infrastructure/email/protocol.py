"""EmailProvider protocol — services depend on this, not the concrete implementation."""

from typing import Optional, Protocol


class EmailProvider(Protocol):
    async def send_verification_email(
        self, email: str, nickname: Optional[str], code: str, *, resend: bool = False
    ) -> bool: ...
