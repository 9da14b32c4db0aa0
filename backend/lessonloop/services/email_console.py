import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from .template_registry import TemplateRegistry, get_subject
from .template_service import TemplateService

logger = logging.getLogger(__name__)


class ConsoleEmailService:
    """Email service that renders and logs instead of delivering (development and tests)."""

    def __init__(self, *_: Any, template_service: Optional[TemplateService] = None, **__: Any) -> None:
        self.template_service = template_service or TemplateService()
        self.sent: List[Tuple[str, str, str]] = []

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        *,
        tags: Optional[Sequence[str]] = None,
    ) -> bool:
        self.sent.append((to_email, subject, html_content))
        logger.info("Console email to %s: %s", to_email, subject)
        return True

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
        return self.send_email(to_email, subject, html, tags=tags)
