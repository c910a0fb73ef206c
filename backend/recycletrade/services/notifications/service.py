"""
Notification service delivering order messages by email and SMS.

This module provides the AWS-backed implementation of the notification
gateway. Templates are rendered with Jinja2, email goes out through SES and
SMS through SNS. Channels are independent: a failed SMS does not prevent the
email, and no channel failure is ever raised to the caller.
"""

from typing import Any, Optional

from recycletrade.core.config import Settings, get_settings
from recycletrade.core.logging import get_logger
from recycletrade.services.notifications.aws_clients import (
    AWSClientError,
    SESClient,
    SNSClient,
    get_ses_client,
    get_sns_client,
)
from recycletrade.services.notifications.contacts import normalize_phone
from recycletrade.services.notifications.gateway import (
    LoggingNotificationGateway,
    NotificationGateway,
    NotificationKind,
    NotificationPayload,
    NotificationResult,
)
from recycletrade.services.notifications.templates import (
    TemplateEngine,
    TemplateEngineError,
    get_template_engine,
)

logger = get_logger(__name__)


class NotificationService:
    """
    Notification gateway backed by AWS SES, AWS SNS and Jinja2 templates.
    """

    def __init__(
        self,
        ses_client: Optional[SESClient] = None,
        sns_client: Optional[SNSClient] = None,
        template_engine: Optional[TemplateEngine] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize notification service.

        Args:
            ses_client: AWS SES client (defaults to new instance)
            sns_client: AWS SNS client (defaults to new instance)
            template_engine: Template engine (defaults to new instance)
            settings: Application settings (defaults to cached settings)
        """
        self.settings = settings or get_settings()
        self.ses_client = ses_client or get_ses_client()
        self.sns_client = sns_client or get_sns_client()
        self.template_engine = template_engine or get_template_engine(
            self.settings.notification_template_dir
        )

        logger.info("NotificationService initialized")

    async def notify(
        self, kind: NotificationKind, payload: NotificationPayload
    ) -> NotificationResult:
        """
        Send a customer notification on every channel the contact supports.

        Args:
            kind: Message type
            payload: Order snapshot and resolved contact

        Returns:
            NotificationResult, successful if at least one channel delivered
        """
        context = self._build_context(payload)
        results: dict[str, Any] = {}

        if payload.customer.email:
            results["email"] = await self._send_email(kind, payload, context)
        else:
            results["email"] = {"status": "skipped", "reason": "no_email"}

        phone = normalize_phone(
            payload.customer.phone, self.settings.default_phone_country_code
        )
        if phone:
            results["sms"] = await self._send_sms(kind, payload, context, phone)
        else:
            results["sms"] = {"status": "skipped", "reason": "no_valid_phone"}

        success = any(r.get("status") == "sent" for r in results.values())
        errors = [r["error"] for r in results.values() if r.get("status") == "failed"]

        logger.info(
            "Notification dispatched",
            kind=kind.value,
            order_id=payload.order_id,
            success=success,
            channels={name: r.get("status") for name, r in results.items()},
        )

        return NotificationResult(
            success=success,
            channels=results,
            error="; ".join(errors) if errors else None,
        )

    async def _send_email(
        self,
        kind: NotificationKind,
        payload: NotificationPayload,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            rendered = self.template_engine.render_email(kind.template_name, context)
            response = await self.ses_client.send_email(
                to_addresses=[payload.customer.email],
                subject=rendered["subject"],
                body_text=rendered["text_body"],
                body_html=rendered["html_body"],
            )
            return {"status": "sent", "message_id": response["message_id"]}
        except (TemplateEngineError, AWSClientError) as e:
            logger.error(
                "Email notification failed",
                kind=kind.value,
                order_id=payload.order_id,
                to_email=payload.customer.email,
                error=str(e),
                error_code=getattr(e, "error_code", None),
                error_type=type(e).__name__,
            )
            return {"status": "failed", "error": str(e)}

    async def _send_sms(
        self,
        kind: NotificationKind,
        payload: NotificationPayload,
        context: dict[str, Any],
        phone: str,
    ) -> dict[str, Any]:
        try:
            message = self.template_engine.render_sms(kind.template_name, context)
            response = await self.sns_client.send_sms(phone, message)
            return {"status": "sent", "message_id": response["message_id"]}
        except (TemplateEngineError, AWSClientError) as e:
            logger.error(
                "SMS notification failed",
                kind=kind.value,
                order_id=payload.order_id,
                to_phone=phone,
                error=str(e),
                error_code=getattr(e, "error_code", None),
                error_type=type(e).__name__,
            )
            return {"status": "failed", "error": str(e)}

    def _build_context(self, payload: NotificationPayload) -> dict[str, Any]:
        tracking_url = None
        if payload.tracking_number:
            tracking_url = self.settings.tracking_url_template.format(
                tracking_number=payload.tracking_number
            )
        return payload.template_context(
            tracking_url=tracking_url,
            support_phone=self.settings.support_phone,
            store_url=self.settings.frontend_url,
        )


def create_notification_gateway(settings: Optional[Settings] = None) -> NotificationGateway:
    """
    Build the notification gateway selected by configuration.

    Called once at application or worker startup; the result is shared by
    every request.
    """
    settings = settings or get_settings()

    if settings.notification_backend == "aws":
        logger.info("Using AWS notification gateway")
        return NotificationService(settings=settings)

    logger.info("Using logging notification gateway")
    return LoggingNotificationGateway()
