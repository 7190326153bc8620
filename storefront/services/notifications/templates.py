"""
Notification template engine with Jinja2 for email rendering.

Templates live in ``storefront/templates/notifications``. Each email is a
``<name>_subject.txt`` subject line, a ``<name>.html`` body and an optional
``<name>.txt`` plain-text body.
"""

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from storefront.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent.parent / "templates" / "notifications"


class TemplateEngineError(Exception):
    """Base exception for template engine errors."""

    def __init__(self, message: str, template_name: Optional[str] = None):
        super().__init__(message)
        self.template_name = template_name


class TemplateNotFoundError(TemplateEngineError):
    """Raised when a template cannot be found."""

    pass


class TemplateRenderError(TemplateEngineError):
    """Raised when template rendering fails."""

    pass


def format_currency(value: Union[int, float, Decimal, None]) -> str:
    """Format an amount in rupees with Indian digit grouping."""
    amount = Decimal(str(value or 0))
    sign = "-" if amount < 0 else ""
    amount = abs(amount)

    whole = int(amount)
    fraction = amount - whole
    digits = str(whole)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])

    if fraction:
        return f"{sign}₹{digits}.{int(fraction * 100):02d}"
    return f"{sign}₹{digits}"


def format_date(value: Union[str, datetime, None]) -> str:
    """Format an ISO date string or datetime as e.g. ``Mon, 5 Jan 2026``."""
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{value:%a}, {value.day} {value:%b %Y}"


class TemplateEngine:
    """
    Template engine for rendering notification emails.
    """

    def __init__(self, template_dir: Optional[Union[str, Path]] = None):
        self.template_dir = Path(template_dir or DEFAULT_TEMPLATE_DIR)

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["currency"] = format_currency
        self.env.filters["date"] = format_date

        logger.debug("Template engine initialized", template_dir=str(self.template_dir))

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template.

        Args:
            template_name: Template name without extension
            context: Template variables

        Returns:
            Dictionary with ``subject``, ``html_body`` and optionally ``text_body``

        Raises:
            TemplateNotFoundError: If the subject or HTML template is missing
            TemplateRenderError: If rendering fails
        """
        context = {"year": datetime.now(timezone.utc).year, **context}

        try:
            subject = self._load(f"{template_name}_subject.txt").render(**context).strip()
            html_body = self._load(f"{template_name}.html").render(**context)

            result = {"subject": subject, "html_body": html_body}

            try:
                result["text_body"] = self._load(f"{template_name}.txt").render(**context)
            except TemplateNotFound:
                logger.debug("Text template not found, using HTML only", template_name=template_name)

        except TemplateNotFound as e:
            logger.error("Email template not found", template_name=template_name, error=str(e))
            raise TemplateNotFoundError(
                f"Email template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            logger.error(
                "Email template rendering failed",
                template_name=template_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        return result

    def _load(self, template_path: str) -> Template:
        return self.env.get_template(template_path)


_engine: Optional[TemplateEngine] = None


def get_template_engine() -> TemplateEngine:
    """Get the shared template engine."""
    global _engine
    if _engine is None:
        _engine = TemplateEngine()
    return _engine
