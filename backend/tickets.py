import base64
import csv
import io
import json
import logging

import qrcode

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Ticket ID",
    "Participant Email",
    "Participant Name",
    "Registration Date",
    "Status",
    "Team Members",
]


def generate_qr_png_bytes(data: str) -> bytes:
    """Return raw PNG bytes of a QR code encoding ``data``."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def qr_payload(registration) -> str:
    """JSON embedded in a ticket's QR code."""
    return json.dumps({
        "ticketId":         registration.ticket_id,
        "participantId":    registration.participant_id,
        "eventId":          registration.event_id,
        "registrationDate": registration.registration_date.isoformat(),
    })


def qr_data_uri(data: str) -> str:
    png = generate_qr_png_bytes(data)
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def ensure_qr_code(registration) -> bool:
    """Generate the ticket QR on first view. Returns True if it was created
    (caller commits), False if the stored one was reused."""
    if registration.qr_code:
        return False
    registration.qr_code = qr_data_uri(qr_payload(registration))
    logger.info("QR code generated for ticket %s", registration.ticket_id)
    return True


def qr_png_from_data_uri(data_uri) -> bytes:
    """Decode a stored data URI back to PNG bytes (b'' if absent/invalid)."""
    if not data_uri or "," not in data_uri:
        return b""
    try:
        return base64.b64decode(data_uri.split(",", 1)[1])
    except ValueError as exc:
        logger.warning("Stored QR code could not be decoded: %s", exc)
        return b""


def _team_members(registration) -> str:
    team = registration.team
    if not team or not team.members:
        return "N/A"
    return "; ".join(m.participant.email for m in team.members)


def registrations_csv(registrations) -> str:
    """Render registrations as a CSV document, one row per registration."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for reg in registrations:
        p = reg.participant
        writer.writerow([
            reg.ticket_id,
            p.email,
            p.full_name,
            reg.registration_date.isoformat(),
            reg.status,
            _team_members(reg),
        ])
    return buf.getvalue()
