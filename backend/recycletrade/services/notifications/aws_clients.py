"""
AWS SES and SNS client wrappers with error handling.

This module wraps the boto3 SES (email) and SNS (SMS) clients used by the
notification service. boto3 is blocking, so every call runs in a worker
thread under an explicit timeout; transport retries are delegated to
botocore's standard retry mode instead of being repeated here.
"""

import asyncio
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from recycletrade.core.config import get_settings
from recycletrade.core.logging import get_logger

logger = get_logger(__name__)

# SES rejections that will not succeed on a later attempt.
_PERMANENT_SES_ERRORS = frozenset(
    {
        "MessageRejected",
        "MailFromDomainNotVerified",
        "ConfigurationSetDoesNotExist",
        "AccountSendingPausedException",
    }
)


class AWSClientError(Exception):
    """Base exception for AWS client errors."""

    def __init__(self, message: str, service: str, **context: Any) -> None:
        super().__init__(message)
        self.service = service
        self.context = context

    @property
    def error_code(self) -> Optional[str]:
        return self.context.get("error_code")


class SESClientError(AWSClientError):
    """Exception for SES-specific errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, service="SES", **context)


class SNSClientError(AWSClientError):
    """Exception for SNS-specific errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, service="SNS", **context)


def _build_boto_config(timeout: float, max_attempts: int) -> Config:
    return Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": max_attempts, "mode": "standard"},
    )


def _client_error_details(error: ClientError) -> tuple[str, str]:
    details = error.response.get("Error", {})
    return details.get("Code", "Unknown"), details.get("Message", str(error))


class SESClient:
    """
    AWS SES client wrapper for transactional email.
    """

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        from_address: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 2,
        client: Any = None,
    ) -> None:
        """
        Initialize SES client.

        Args:
            aws_access_key_id: AWS access key ID (defaults to settings)
            aws_secret_access_key: AWS secret access key (defaults to settings)
            region_name: AWS region name (defaults to settings)
            from_address: Default sender address (defaults to settings)
            timeout: Per-call timeout in seconds (defaults to settings)
            max_attempts: botocore attempts including the first one
            client: Pre-built boto3 client, mainly for tests
        """
        settings = get_settings()
        self.timeout = timeout or settings.external_call_timeout_seconds
        self.from_address = from_address or settings.ses_from_email
        region = region_name or settings.aws_region

        self._client = client or boto3.client(
            "ses",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key
            or settings.aws_secret_access_key,
            region_name=region,
            config=_build_boto_config(self.timeout, max_attempts),
        )

        logger.info("SES client initialized", region=region, timeout=self.timeout)

    async def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        reply_to_addresses: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """
        Send email via AWS SES.

        Args:
            to_addresses: Recipient email addresses
            subject: Email subject
            body_text: Plain text email body
            body_html: HTML email body (optional)
            reply_to_addresses: Reply-to email addresses (optional)

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            SESClientError: If the email could not be sent
        """
        if not to_addresses:
            raise SESClientError(
                "At least one recipient email address is required",
                to_addresses=to_addresses,
            )

        message: dict[str, Any] = {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body_text, "Charset": "UTF-8"}},
        }
        if body_html:
            message["Body"]["Html"] = {"Data": body_html, "Charset": "UTF-8"}

        send_params: dict[str, Any] = {
            "Source": self.from_address,
            "Destination": {"ToAddresses": to_addresses},
            "Message": message,
        }
        if reply_to_addresses:
            send_params["ReplyToAddresses"] = reply_to_addresses

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._client.send_email, **send_params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise SESClientError(
                "SES send timed out",
                error_code="Timeout",
                to_addresses=to_addresses,
                timeout=self.timeout,
            ) from e
        except ClientError as e:
            error_code, error_message = _client_error_details(e)
            raise SESClientError(
                f"SES error: {error_message}",
                error_code=error_code,
                permanent=error_code in _PERMANENT_SES_ERRORS,
                to_addresses=to_addresses,
            ) from e
        except BotoCoreError as e:
            raise SESClientError(
                f"SES connection error: {e}",
                error_code=type(e).__name__,
                to_addresses=to_addresses,
            ) from e

        message_id = response["MessageId"]
        logger.info(
            "Email sent via SES",
            message_id=message_id,
            to_addresses=to_addresses,
            subject=subject,
        )

        return {
            "message_id": message_id,
            "status": "sent",
            "to_addresses": to_addresses,
        }


class SNSClient:
    """
    AWS SNS client wrapper for transactional SMS.
    """

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        sender_id: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: int = 2,
        client: Any = None,
    ) -> None:
        settings = get_settings()
        self.timeout = timeout or settings.external_call_timeout_seconds
        self.sender_id = sender_id if sender_id is not None else settings.sns_sender_id
        region = region_name or settings.aws_region

        self._client = client or boto3.client(
            "sns",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key
            or settings.aws_secret_access_key,
            region_name=region,
            config=_build_boto_config(self.timeout, max_attempts),
        )

        logger.info("SNS client initialized", region=region, timeout=self.timeout)

    async def send_sms(self, phone_number: str, message: str) -> dict[str, Any]:
        """
        Send a transactional SMS via AWS SNS.

        Args:
            phone_number: Recipient phone number in E.164 format
            message: SMS message text

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            SNSClientError: If the SMS could not be sent
        """
        if not phone_number.startswith("+"):
            raise SNSClientError(
                "Phone number must be in E.164 format (e.g., +1234567890)",
                phone_number=phone_number,
            )

        attributes: dict[str, Any] = {
            "AWS.SNS.SMS.SMSType": {
                "DataType": "String",
                "StringValue": "Transactional",
            }
        }
        if self.sender_id:
            attributes["AWS.SNS.SMS.SenderID"] = {
                "DataType": "String",
                "StringValue": self.sender_id,
            }

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self._client.publish,
                    PhoneNumber=phone_number,
                    Message=message,
                    MessageAttributes=attributes,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise SNSClientError(
                "SNS publish timed out",
                error_code="Timeout",
                phone_number=phone_number,
                timeout=self.timeout,
            ) from e
        except ClientError as e:
            error_code, error_message = _client_error_details(e)
            raise SNSClientError(
                f"SNS error: {error_message}",
                error_code=error_code,
                phone_number=phone_number,
            ) from e
        except BotoCoreError as e:
            raise SNSClientError(
                f"SNS connection error: {e}",
                error_code=type(e).__name__,
                phone_number=phone_number,
            ) from e

        message_id = response["MessageId"]
        logger.info("SMS sent via SNS", message_id=message_id)

        return {"message_id": message_id, "status": "sent"}


def get_ses_client() -> SESClient:
    """Factory function to create an SES client from settings."""
    return SESClient()


def get_sns_client() -> SNSClient:
    """Factory function to create an SNS client from settings."""
    return SNSClient()
