"""
FILE: src/email/service.py
Email service: Resend API, clinic-branded templates
"""

import html
import logging

import resend  # type: ignore

from src.email.config import email_settings
from src.email.schemas import EmailResponse, StaffInvitationEmailData

logger = logging.getLogger(__name__)

# HTML template helpers

_HEADER = """
<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"><meta name="viewport" content="width=device-width,initial-scale=1.0"></head>
<body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;max-width:600px;margin:0 auto;padding:20px;">
"""

_FOOTER = """
<div style="text-align:center;padding:20px;color:#999;font-size:12px;">
  <p>This is an automated message. Please do not reply.</p>
</div></body></html>
"""


def _banner(title: str, color1: str = "#1a4f6b", color2: str = "#2e86c1") -> str:
    return f"""
<div style="background:linear-gradient(135deg,{color1} 0%,{color2} 100%);
     padding:30px;text-align:center;border-radius:10px 10px 0 0;">
  <h1 style="color:white;margin:0;font-size:26px;">{html.escape(title)}</h1>
</div>
<div style="background:#f9f9f9;padding:30px;border-radius:0 0 10px 10px;">
"""


def _close_body() -> str:
    return "</div>"


class EmailService:
    """Email service: all send methods return EmailResponse."""

    @staticmethod
    def _initialize_resend() -> bool:
        if not email_settings.RESEND_API_KEY:
            return False
        resend.api_key = email_settings.RESEND_API_KEY
        return True

    @staticmethod
    def _send(subject: str, to: str, body: str) -> EmailResponse:
        try:
            params = {
                "from": f"{email_settings.MAIL_FROM_NAME} <{email_settings.MAIL_FROM}>",
                "to": [to],
                "subject": subject,
                "html": body,
            }
            response = resend.Emails.send(params)  # type: ignore
            logger.info(f"Email sent to {to} | Resend ID: {response.get('id')}")
            return EmailResponse(success=True, message=f"Email sent to {to}", email_id=response.get("id"))
        except Exception as e:
            # Delivery failures are reported, the invitation itself stands
            logger.error(f"Email send failed: {e}")
            return EmailResponse(success=False, message="Email failed", error=str(e))

    @staticmethod
    def invitation_link(token: str) -> str:
        return f"{email_settings.SIGNUP_URL}?token={token}"

    @staticmethod
    async def send_staff_invitation_email(data: StaffInvitationEmailData) -> EmailResponse:
        if not email_settings.SEND_EMAILS:
            logger.info(f"[DEV] Invitation email → {data.email} | role: {data.role}")
            return EmailResponse(success=True, message="Dev mode: email not sent")

        if not EmailService._initialize_resend():
            return EmailResponse(success=False, message="Email service not configured", error="Missing API key")

        clinic = html.escape(data.clinic_name or "our clinic")
        inviter = f" by <strong>{html.escape(data.invited_by)}</strong>" if data.invited_by else ""
        link = EmailService.invitation_link(data.invitation_token)
        body = _HEADER + _banner("You're invited") + f"""
<p>Hello,</p>
<p>You have been invited{inviter} to join <strong>{clinic}</strong>
   as <strong>{html.escape(data.role)}</strong>.</p>
<div style="text-align:center;margin:30px 0;">
  <a href="{html.escape(link)}"
     style="background:#1a4f6b;color:white;padding:14px 30px;text-decoration:none;border-radius:6px;font-weight:bold;">
     Accept Invitation
  </a>
</div>
<div style="background:#fff8e1;border:1px solid #ffc107;border-radius:8px;padding:15px;margin:25px 0;">
  <p style="margin:0;color:#856404;">
    This invitation expires on {data.expires_at.strftime('%Y-%m-%d %H:%M')} UTC.
  </p>
</div>
""" + _close_body() + _FOOTER

        return EmailService._send(f"Invitation to join {data.clinic_name or 'the clinic'}", data.email, body)
