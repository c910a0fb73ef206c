"""
Notification template engine with Jinja2 for email and SMS rendering.

Each notification kind owns a template family in the template directory:
``{name}_subject.txt``, ``{name}.html``, ``{name}.txt`` and ``{name}_sms.txt``.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    Template,
    TemplateError,
    TemplateNotFound,
    select_autoescape,
)

from recycletrade.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "notifications"


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


class TemplateEngine:
    """
    Template engine for rendering notification templates.
    """

    def __init__(
        self,
        template_dir: Optional[Union[str, Path]] = None,
        enable_autoescape: bool = True,
        cache_size: int = 400,
    ):
        """
        Initialize the template engine.

        Args:
            template_dir: Directory containing template files. Defaults to
                the templates shipped with the package.
            enable_autoescape: Enable autoescaping for HTML templates.
            cache_size: Size of the template cache.
        """
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR

        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]) if enable_autoescape else False,
            cache_size=cache_size,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )

        self.env.filters["currency"] = format_currency
        self.env.filters["date"] = format_date

        logger.info(
            "Template engine initialized",
            template_dir=str(self.template_dir),
            cache_size=cache_size,
        )

    def render_email(self, template_name: str, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Render an email template family.

        Args:
            template_name: Template family name.
            context: Variables to substitute in the template.

        Returns:
            Dictionary with 'subject', 'html_body' and 'text_body'.

        Raises:
            TemplateNotFoundError: If the subject or HTML template is missing.
            TemplateRenderError: If rendering fails.
        """
        try:
            subject = self._load_template(f"{template_name}_subject.txt").render(**context)
            html_body = self._load_template(f"{template_name}.html").render(**context)

            try:
                text_body = self._load_template(f"{template_name}.txt").render(**context)
            except TemplateNotFound:
                logger.debug("Text template not found, using HTML only", template_name=template_name)
                text_body = ""

        except TemplateNotFound as e:
            raise TemplateNotFoundError(
                f"Email template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            raise TemplateRenderError(
                f"Failed to render email template: {e}",
                template_name=template_name,
            ) from e

        return {
            "subject": " ".join(subject.split()),
            "html_body": html_body,
            "text_body": text_body,
        }

    def render_sms(self, template_name: str, context: Dict[str, Any]) -> str:
        """
        Render an SMS template.

        Raises:
            TemplateNotFoundError: If the template cannot be found.
            TemplateRenderError: If rendering fails.
        """
        try:
            template = self._load_template(f"{template_name}_sms.txt")
            return template.render(**context).strip()
        except TemplateNotFound as e:
            raise TemplateNotFoundError(
                f"SMS template not found: {template_name}",
                template_name=template_name,
            ) from e
        except TemplateError as e:
            raise TemplateRenderError(
                f"Failed to render SMS template: {e}",
                template_name=template_name,
            ) from e

    def _load_template(self, template_path: str) -> Template:
        return self.env.get_template(template_path)


def format_currency(value: Union[int, float, Decimal, None]) -> str:
    """Format a number as currency."""
    if value is None:
        return "$0.00"
    return f"${Decimal(str(value)):,.2f}"


def format_date(value: Union[str, datetime, None]) -> str:
    """Format an ISO date string or datetime for display."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%B %d, %Y")
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt.strftime("%B %d, %Y")
    except (ValueError, AttributeError):
        return str(value)


def get_template_engine(template_dir: Optional[str] = None) -> TemplateEngine:
    """Factory function to create a template engine instance."""
    return TemplateEngine(template_dir=template_dir)
