"""
SES / SendGrid email transport.

Configure via env:
- EMAIL_PROVIDER: "ses" | "sendgrid" (default: "sendgrid" if SENDGRID_API_KEY
  is set, else "ses" if AWS_REGION / AWS_ACCESS_KEY_ID is set)
- For SES: AWS_REGION, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY (or default creds)
- For SendGrid: SENDGRID_API_KEY
"""

from __future__ import annotations
import logging
import os
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def resolve_provider() -> Optional[str]:
    provider = os.getenv("EMAIL_PROVIDER", "").lower()
    if provider:
        return provider
    if os.getenv("SENDGRID_API_KEY"):
        return "sendgrid"
    if os.getenv("AWS_REGION") or os.getenv("AWS_ACCESS_KEY_ID"):
        return "ses"
    return None


def send_email(
    *,
    to_email: str,
    subject: str,
    body_text: str,
    from_email: str,
    from_name: str,
    body_html: Optional[str] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Send one message. Returns (provider, provider_msg_id), or
    (None, error_message) on failure.
    """
    provider = resolve_provider()
    if provider is None:
        return None, "EMAIL_PROVIDER not set and no SENDGRID_API_KEY or AWS creds"
    if provider == "sendgrid":
        return _send_via_sendgrid(
            to_email, subject, body_text, body_html, from_email, from_name
        )
    if provider == "ses":
        return _send_via_ses(
            to_email, subject, body_text, body_html, from_email, from_name
        )
    return None, f"Unknown EMAIL_PROVIDER: {provider}"


def check_provider() -> Tuple[bool, str]:
    """Connectivity self-test used by /api/health."""
    provider = resolve_provider()
    if provider == "sendgrid":
        try:
            from sendgrid import SendGridAPIClient

            sg = SendGridAPIClient(os.getenv("SENDGRID_API_KEY", "").strip())
            resp = sg.client.scopes.get()
            return resp.status_code < 300, "sendgrid"
        except Exception as e:
            logger.warning("sendgrid check failed: %s", e)
            return False, str(e)
    if provider == "ses":
        try:
            import boto3

            client = boto3.client(
                "ses", region_name=os.getenv("AWS_REGION", "us-east-1")
            )
            client.get_send_quota()
            return True, "ses"
        except Exception as e:
            logger.warning("ses check failed: %s", e)
            return False, str(e)
    return False, "no email provider configured"


def _send_via_sendgrid(
    to_email: str,
    subject: str,
    body_text: str,
    body_html: Optional[str],
    from_email: str,
    from_name: str,
) -> Tuple[Optional[str], Optional[str]]:
    try:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail, Email, To, Content

        api_key = os.getenv("SENDGRID_API_KEY", "").strip()
        if not api_key:
            return None, "SENDGRID_API_KEY not set"

        message = Mail(
            from_email=Email(from_email, from_name),
            to_emails=To(to_email),
            subject=subject,
            plain_text_content=Content("text/plain", body_text),
            html_content=Content("text/html", body_html or f"<pre>{body_text}</pre>"),
        )
        response = SendGridAPIClient(api_key).send(message)
        msg_id = None
        if response.headers:
            msg_id = response.headers.get("X-Message-Id")
        return "sendgrid", msg_id or str(response.status_code)
    except Exception as e:
        return None, str(e)


def _send_via_ses(
    to_email: str,
    subject: str,
    body_text: str,
    body_html: Optional[str],
    from_email: str,
    from_name: str,
) -> Tuple[Optional[str], Optional[str]]:
    try:
        import boto3
        from botocore.exceptions import ClientError
    except ImportError as e:
        return None, str(e)

    try:
        client = boto3.client("ses", region_name=os.getenv("AWS_REGION", "us-east-1"))
        body = {"Text": {"Data": body_text, "Charset": "UTF-8"}}
        if body_html:
            body["Html"] = {"Data": body_html, "Charset": "UTF-8"}
        response = client.send_email(
            Source=f"{from_name} <{from_email}>",
            Destination={"ToAddresses": [to_email]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": body,
            },
        )
        return "ses", response.get("MessageId") or "unknown"
    except ClientError as e:
        return None, str(e.response.get("Error", {}).get("Message", str(e)))
    except Exception as e:
        return None, str(e)
