import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.mime.image import MIMEImage
from html import escape

import config
from tickets import generate_qr_png_bytes, qr_payload, qr_png_from_data_uri

logger = logging.getLogger(__name__)


def email_configured() -> bool:
    return bool(config.EMAIL_USER and config.EMAIL_PASS)


def _smtp_endpoint():
    """(host, port) for the configured EMAIL_SERVICE, else SMTP_HOST/SMTP_PORT."""
    return config.SMTP_PRESETS.get(config.EMAIL_SERVICE, (config.SMTP_HOST, config.SMTP_PORT))


def _format_datetime(value) -> str:
    """datetime(2026, 4, 19, 18, 30) → 'Sunday, 19 April 2026, 18:30'."""
    try:
        return value.strftime("%A, %d %B %Y, %H:%M")
    except AttributeError:
        return str(value)


# ── HTML bodies ──────────────────────────────────────────────────────────────

def _detail_row(label: str, value: str) -> str:
    return f"""
                    <tr>
                      <td style="color:#6b5b9e;font-size:11px;text-transform:uppercase;letter-spacing:1px;width:38%;vertical-align:top;">
                        {escape(label)}
                      </td>
                      <td style="color:#1a1035;font-size:14px;font-weight:700;">
                        {escape(value)}
                      </td>
                    </tr>"""


def _wrap(title: str, heading: str, greeting_name: str, intro: str,
          ticket_id: str, qr_caption: str, rows_html: str, has_qr: bool,
          extra_html: str = "") -> str:
    qr_img_html = (
        '<img src="cid:qrcode" alt="QR Code" '
        'width="200" height="200" style="display:block;margin:0 auto;" />'
        if has_qr
        else '<p style="text-align:center;color:#888;font-size:13px;">QR code unavailable</p>'
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{escape(title)}</title>
</head>
<body style="margin:0;padding:0;background:#f5f5f5;font-family:Arial,Helvetica,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background:#f5f5f5;padding:40px 16px;">
    <tr><td align="center">
      <table width="600" cellpadding="0" cellspacing="0"
             style="background:#ffffff;border-radius:10px;overflow:hidden;max-width:600px;width:100%;">
        <tr>
          <td style="background:linear-gradient(135deg,#667eea 0%,#764ba2 100%);padding:30px;text-align:center;">
            <h1 style="color:#ffffff;font-size:26px;margin:0;">{escape(heading)}</h1>
          </td>
        </tr>
        <tr>
          <td style="padding:30px 40px 12px;">
            <p style="color:#1a1035;font-size:16px;margin:0 0 8px;">Hi <strong>{escape(greeting_name)}</strong>,</p>
            <p style="color:#444466;font-size:14px;margin:0;line-height:1.6;">{intro}</p>
          </td>
        </tr>
        <tr>
          <td style="padding:16px 40px 24px;text-align:center;">
            <div style="background:#f8f9fa;border:2px solid #667eea;border-radius:10px;padding:20px;">
              <p style="color:#666;font-size:12px;margin:0;">Ticket ID</p>
              <p style="color:#667eea;font-size:22px;font-weight:bold;letter-spacing:2px;margin:8px 0 16px;">{escape(ticket_id)}</p>
              {qr_img_html}
              <p style="color:#666;font-size:12px;margin:12px 0 0;">{escape(qr_caption)}</p>
            </div>
          </td>
        </tr>
        <tr>
          <td style="padding:0 40px 24px;">
            <table width="100%" cellpadding="7" cellspacing="0">{rows_html}
            </table>
          </td>
        </tr>
        {extra_html}
        <tr>
          <td style="background:#f8f9fa;padding:20px 40px;text-align:center;">
            <p style="color:#666;font-size:12px;margin:0;">
              This is an automated message — please do not reply to this email.
            </p>
          </td>
        </tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


def build_ticket_email_html(participant_name: str, event, registration, has_qr: bool) -> str:
    rows = _detail_row("Event", event.name)
    rows += _detail_row("Date & Time", _format_datetime(event.start_date))
    if event.venue:
        rows += _detail_row("Venue", event.venue)
    rows += _detail_row("Status", registration.status.capitalize())
    intro = (
        f"Thank you for registering for <strong>{escape(event.name)}</strong>! "
        "Your registration has been confirmed."
    )
    return _wrap(
        f"Your Ticket — {event.name}", "Your Event Ticket", participant_name, intro,
        registration.ticket_id, "Please present this QR code at the event entrance",
        rows, has_qr,
    )


def build_merchandise_email_html(participant_name: str, event, registration,
                                 items, total_amount: float, has_qr: bool) -> str:
    rows = ""
    for index, item in enumerate(items, start=1):
        label = f"{item.item_name} x {item.quantity}"
        if item.selected_size:
            label += f" (Size: {item.selected_size})"
        if item.selected_color:
            label += f" (Color: {item.selected_color})"
        rows += _detail_row(f"Item {index}", label)
    rows += _detail_row("Total Amount", f"₹{total_amount:.2f}")
    rows += _detail_row("Payment Status", (registration.merch_payment_status or "pending").capitalize())
    rows += _detail_row("Collection Date", _format_datetime(event.start_date))
    if event.venue:
        rows += _detail_row("Collection Venue", event.venue)
    instructions = """
        <tr>
          <td style="padding:0 40px 24px;">
            <div style="background:#fff3cd;border-left:4px solid #ffc107;border-radius:5px;padding:14px 18px;">
              <p style="color:#856404;font-size:13px;margin:0;line-height:1.5;">
                Present your QR code when collecting your items and complete payment
                before or during collection.
              </p>
            </div>
          </td>
        </tr>"""
    intro = f"Your merchandise order for <strong>{escape(event.name)}</strong> has been confirmed!"
    return _wrap(
        f"Order Confirmation — {event.name}", "Merchandise Order Confirmed",
        participant_name, intro, registration.ticket_id,
        "Present this QR code when collecting your merchandise",
        rows, has_qr, instructions,
    )


# ── Delivery ─────────────────────────────────────────────────────────────────

def _send(to_addr: str, subject: str, html_body: str, qr_png: bytes) -> bool:
    """
    Deliver an HTML email with an optional inline QR code.
    Returns True when sent. Any SMTP error is logged but NOT re-raised.
    """
    sender = config.SMTP_FROM or config.EMAIL_USER

    # multipart/related lets the HTML reference the inline QR image via cid:
    msg = MIMEMultipart("related")
    msg["Subject"] = subject
    msg["From"]    = sender
    msg["To"]      = to_addr
    msg.attach(MIMEText(html_body, "html", "utf-8"))

    if qr_png:
        qr_part = MIMEImage(qr_png, _subtype="png")
        qr_part.add_header("Content-ID", "<qrcode>")
        qr_part.add_header("Content-Disposition", "inline", filename="ticket-qr.png")
        msg.attach(qr_part)

    host, port = _smtp_endpoint()
    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            server.ehlo()
            server.starttls()
            server.login(config.EMAIL_USER, config.EMAIL_PASS)
            server.sendmail(sender, [to_addr], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send email to %s: %s", to_addr, exc)
        return False

    logger.info("Email sent → %s (%s)", to_addr, subject)
    return True


def _qr_png_for(registration) -> bytes:
    stored = qr_png_from_data_uri(registration.qr_code)
    if stored:
        return stored
    try:
        return generate_qr_png_bytes(qr_payload(registration))
    except (ValueError, OSError) as exc:
        logger.warning("QR generation failed: %s", exc)
        return b""


def send_ticket_email(participant, event, registration) -> dict:
    """Registration confirmation with the entry QR code."""
    if not email_configured():
        logger.info(
            "Email not configured (EMAIL_USER/EMAIL_PASS not set) — "
            "skipping ticket email for %s.", registration.ticket_id
        )
        return {"success": True, "message": "Email not configured - skipped"}

    qr_png = _qr_png_for(registration)
    html_body = build_ticket_email_html(participant.full_name, event, registration, bool(qr_png))
    sent = _send(participant.email, f"🎫 Your Ticket for {event.name}", html_body, qr_png)
    return {"success": sent, "message": "Email sent" if sent else "Email delivery failed"}


def send_merchandise_email(participant, event, registration, items, total_amount: float) -> dict:
    """Order confirmation for a merchandise purchase."""
    if not email_configured():
        logger.info(
            "Email not configured — skipping order confirmation for %s.",
            registration.ticket_id,
        )
        return {"success": True, "message": "Email not configured - skipped"}

    qr_png = _qr_png_for(registration)
    html_body = build_merchandise_email_html(
        participant.full_name, event, registration, items, total_amount, bool(qr_png)
    )
    sent = _send(participant.email, f"🛒 Order Confirmation: {event.name}", html_body, qr_png)
    return {"success": sent, "message": "Email sent" if sent else "Email delivery failed"}
