import json
import logging
from typing import Dict, Optional

import httpx

from ..settings import settings

logger = logging.getLogger(__name__)


class MailService:
    """Sends transactional mail through the Mailgun HTTP API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        domain: Optional[str] = None,
        from_email: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: float = 10.0
    ):
        self.api_key = api_key or settings.MAILGUN_API_KEY
        self.domain = domain or settings.MAILGUN_DOMAIN
        self.from_email = from_email or settings.MAILGUN_FROM_EMAIL or (
            f"{settings.BRAND_NAME} <noreply@{self.domain}>" if self.domain else None
        )
        self.api_url = (api_url or settings.MAILGUN_API_URL).rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.domain and self.from_email)

    async def send_template(self, to_email: str, subject: str, template: str, variables: Dict[str, str]) -> bool:
        """Send a stored Mailgun template. Returns False when delivery failed or mail is not configured."""
        if not self.configured:
            logger.warning(f"Mail service not configured, skipping '{template}' message")
            return False

        data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "template": template,
            "h:X-Mailgun-Variables": json.dumps(variables),
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_url}/v3/{self.domain}/messages",
                    auth=("api", self.api_key),
                    data=data
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Mail delivery rejected for template '{template}': {e.response.status_code}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Mail delivery failed for template '{template}': {e}")
            return False

        logger.info(f"Sent '{template}' message")
        return True

    async def send_password_reset(self, to_email: str, first_name: Optional[str], reset_url: str) -> bool:
        return await self.send_template(
            to_email,
            subject=f"Reset your {settings.BRAND_NAME} password",
            template=settings.MAILGUN_RESET_TEMPLATE,
            variables={
                "firstName": first_name or "",
                "resetUrl": reset_url,
                "brandName": settings.BRAND_NAME,
            }
        )


_mail_service: Optional[MailService] = None


def get_mail_service() -> MailService:
    """FastAPI dependency returning the shared mail service"""
    global _mail_service
    if _mail_service is None:
        _mail_service = MailService()
    return _mail_service
