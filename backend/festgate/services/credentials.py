"""
Entry credentials: token generation and the QR payload shown at the gate.
"""

import base64
import io
import json
import re
import secrets
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_H

# 32 random bytes, hex encoded
TOKEN_BYTES = 32
_TOKEN_RE = re.compile(r"^[0-9a-f]{64}$")


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def is_well_formed(token: str) -> bool:
    return bool(token) and _TOKEN_RE.match(token) is not None


def qr_payload(token: str, registration_id: int, item_id: int, user_id: int) -> dict:
    return {
        "token": token,
        "registration_id": registration_id,
        "item_id": item_id,
        "user_id": user_id,
    }


def render_qr_data_url(payload: dict) -> str:
    """Render the payload as a PNG QR code, returned as a data: URL."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, box_size=10, border=2)
    qr.add_data(json.dumps(payload, separators=(",", ":")))
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def parse_scan_input(raw: str) -> tuple[str, Optional[int]]:
    """
    Accept what a handheld scanner reads: either the bare token or the JSON
    QR payload. Returns (token, registration_id or None). Anything that does
    not parse yields the raw string, which then simply fails lookup.
    """
    raw = raw.strip()
    if not raw.startswith("{"):
        return raw.lower(), None

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return raw, None
    if not isinstance(data, dict):
        return raw, None

    token = str(data.get("token", "")).strip().lower()
    registration_id = data.get("registration_id")
    if isinstance(registration_id, bool) or not isinstance(registration_id, int):
        registration_id = None
    return token, registration_id
