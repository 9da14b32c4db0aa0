# backend/lessonloop/services/email.py
"""
Email Service for LessonLoop

Sends transactional email through the Resend API. Templates are rendered by
TemplateService; ``send_template`` is the collaborator contract used by
NotificationService ("send an email given template name + structured data").
"""

import logging
import re
from typing import Any, Dict, Mapping, Optional, Sequence

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import ServiceException
from .base import BaseService
from .template_registry import TemplateRegistry, get_subject
from .template_service import TemplateService

logger = logging.getLogger(__name__)


def html_to_text(html_content: str) -> str:
    """Plain-text fallback for better deliverability."""
    text = re.sub(r"<[^>]+>", "", html_content)
    return re.sub(r"\s+", " ", text).strip()


class EmailService(BaseService):
    """
    Service for sending emails using Resend API.

    Extends BaseService for metrics collection and standardized error handling.
    """

    def __init__(self, db: Session, template_service: Optional[TemplateService] = None):
        super().__init__(db)

        if not settings.resend_api_key:
            raise ServiceException("Resend API key not configured")

        resend.api_key = settings.resend_api_key.get_secret_value()
        self.from_email = f"{settings.email_from_name} <{settings.email_from_address}>"
        self.template_service = template_service or TemplateService()

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        *,
        tags: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """
        Send a generic email using Resend.

        Raises:
            ServiceException: If email sending fails
        """
        email_data: Dict[str, Any] = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content or html_to_text(html_content),
        }
        if tags:
            email_data["tags"] = [{"name": "category", "value": tag} for tag in tags]

        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {type(e).__name__}: {e}")
            raise ServiceException(f"Email sending failed: {e}") from e

        self.logger.info(f"Email sent successfully to {to_email} - Subject: {subject}")
        return dict(response) if isinstance(response, Mapping) else {"response": response}

    @BaseService.measure_operation("send_template")
    def send_template(
        self,
        to_email: str,
        template_name: TemplateRegistry,
        context: Mapping[str, Any],
        *,
        tags: Optional[Sequence[str]] = None,
    ) -> bool:
        subject = get_subject(template_name)
        html = self.template_service.render_template(
            template_name, context={"subject": subject, **dict(context)}
        )
        self.send_email(to_email, subject, html, tags=tags)
        return True
