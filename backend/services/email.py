"""
Invitation email delivery (Resend)
"""
import html

import resend
from core.config import RESEND_API_KEY, SENDER_EMAIL, logger

if RESEND_API_KEY:
    resend.api_key = RESEND_API_KEY


async def send_email(to_email: str, subject: str, html_content: str) -> dict:
    """Send email using Resend.

    Never raises: returns {"success", "message_id", "error"} so callers can
    record the outcome on the guest.
    """
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured, skipping email")
        return {"success": False, "message_id": None, "error": "Email delivery is not configured"}

    try:
        params = {
            "from": SENDER_EMAIL,
            "to": [to_email],
            "subject": subject,
            "html": html_content
        }
        response = resend.Emails.send(params)
        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent to {to_email}: {subject}")
        return {"success": True, "message_id": message_id, "error": None}
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return {"success": False, "message_id": None, "error": str(e)}


def get_invitation_template(variables: dict) -> tuple:
    """Subject and HTML body of a guest invitation"""
    v = {key: html.escape(str(value or "")) for key, value in variables.items()}
    subject = f"Invitation to {variables.get('event_name') or 'our event'}"
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #7c3aed;">{v.get('event_name')}</h2>
        <p>Hi {v.get('guest_name')},</p>
        <p>You are invited! Please let us know if you can make it.</p>
        <div style="background: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0;">
            <p><strong>Date:</strong> {v.get('event_date')} {v.get('event_time')}</p>
            <p><strong>Location:</strong> {v.get('event_location')}</p>
        </div>
        <p style="text-align: center; margin: 24px 0;">
            <a href="{v.get('invitation_url')}"
               style="background: #7c3aed; color: #fff; padding: 12px 24px; border-radius: 6px; text-decoration: none;">
                View invitation &amp; RSVP
            </a>
        </p>
        <img src="{v.get('tracking_url')}" width="1" height="1" alt="" style="display: none;" />
    </div>
    """
    return subject, body


async def send_invitation_email(to_email: str, variables: dict) -> dict:
    subject, body = get_invitation_template(variables)
    return await send_email(to_email, subject, body)
