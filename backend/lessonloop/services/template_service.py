# backend/lessonloop/services/template_service.py
"""
Template rendering service for LessonLoop.

Renders the email templates under ``lessonloop/templates`` with Jinja2 and
a small set of shared filters and context variables.
"""

from datetime import date, datetime
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..core.config import settings
from .template_registry import TemplateRegistry

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


def currency(value: Optional[int]) -> str:
    """Format integer cents as dollars."""
    if value is None:
        return "-"
    return f"${value / 100:,.2f}"


def format_date(value: Union[date, datetime, str], format_str: str = "%B %d, %Y") -> str:
    if isinstance(value, str):
        return value  # Already formatted
    return value.strftime(format_str)


class TemplateService:
    """Centralized template rendering using Jinja2."""

    def __init__(self, template_dir: Optional[Path] = None):
        self.env = Environment(
            loader=FileSystemLoader(template_dir or TEMPLATE_DIR),
            autoescape=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self.env.filters["currency"] = currency
        self.env.filters["format_date"] = format_date

    def get_common_context(self) -> Dict[str, Any]:
        return {"brand_name": settings.email_from_name}

    def render_template(
        self, template: Union[TemplateRegistry, str], context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Render a template with the common context merged under ``context``.

        Raises:
            jinja2.TemplateNotFound / jinja2.UndefinedError on bad templates or context
        """
        name = template.value if isinstance(template, TemplateRegistry) else template
        full_context = {**self.get_common_context(), **(context or {})}
        return self.env.get_template(name).render(**full_context)
