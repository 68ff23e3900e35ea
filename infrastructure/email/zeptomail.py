"""ZeptoMail delivery of registration codes.

A message is one POST to ``EmailSettings.api_url``. Delivery problems are
reported as ``False`` so the registration service can roll back the pending
row; they never raise.
"""

import os
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)

TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

_TOKEN_SCHEME = "Zoho-enczapikey"
_ACCEPTED = frozenset({200, 201, 202})


class ZeptoMailProvider:
    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        code_ttl_minutes: int = 10,
        template_dir: str = TEMPLATE_DIR,
    ) -> None:
        self.settings = settings
        self.http = http_client
        self.code_ttl_minutes = code_ttl_minutes
        self.templates = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html"]),
        )

    @property
    def configured(self) -> bool:
        return bool(self.settings.api_token)

    def _authorization(self) -> str:
        token = self.settings.api_token
        if token.startswith(_TOKEN_SCHEME):
            return token
        return f"{_TOKEN_SCHEME} {token}"

    def render_verification(self, nickname: Optional[str], code: str) -> str:
        return self.templates.get_template("verification.html").render(
            code=code, nickname=nickname, ttl_minutes=self.code_ttl_minutes
        )

    def _plain_verification(self, nickname: Optional[str], code: str) -> str:
        greeting = f"Hello {nickname}," if nickname else "Hello,"
        return "\n\n".join(
            [
                greeting,
                f"Your readmeow verification code is: {code}",
                f"It expires in {self.code_ttl_minutes} minutes.",
            ]
        )

    def _message(
        self, recipient: str, recipient_name: Optional[str], subject: str, html: str, text: str
    ) -> dict:
        sender = {"address": self.settings.from_email, "name": self.settings.from_name}
        to = {"email_address": {"address": recipient, "name": recipient_name or recipient}}
        return {
            "from": sender,
            "to": [to],
            "subject": subject,
            "htmlbody": html,
            "textbody": text,
        }

    async def _deliver(self, message: dict) -> bool:
        recipient = message["to"][0]["email_address"]["address"]
        if not self.configured:
            log.error("email_not_sent", to_email=recipient, reason="missing_api_token")
            return False

        try:
            response = await self.http.post(
                self.settings.api_url,
                json=message,
                headers={
                    "Authorization": self._authorization(),
                    "Content-Type": "application/json",
                },
            )
        except Exception as exc:
            log.error(
                "email_transport_failed",
                to_email=recipient,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False

        if response.status_code not in _ACCEPTED:
            log.error(
                "email_rejected",
                to_email=recipient,
                status_code=response.status_code,
                body=response.text[:200],
            )
            return False

        log.info("email_delivered", to_email=recipient, subject=message["subject"])
        return True

    async def send_verification_email(
        self, email: str, nickname: Optional[str], code: str, *, resend: bool = False
    ) -> bool:
        subject = "Your new readmeow code" if resend else "Verify your email - readmeow"
        message = self._message(
            email,
            nickname,
            subject,
            self.render_verification(nickname, code),
            self._plain_verification(nickname, code),
        )
        return await self._deliver(message)
