from __future__ import annotations

import html
import logging
from typing import List, Optional

import qrcode

from ..constants import EVENT_DATE_LABEL, EVENT_NAME

logger = logging.getLogger(__name__)

CARD_WIDTH = 800
CARD_HEIGHT = 500
QR_SIZE = 200


def _qr_matrix(data: str) -> List[List[bool]]:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        border=0,
    )
    qr.add_data(data)
    qr.make(fit=True)
    return qr.get_matrix()


def qr_svg_group(data: str, x: int, y: int, size: int = QR_SIZE, color: str = "#ffffff") -> str:
    """QR code as an SVG ``<g>`` of square modules, or a placeholder box."""
    try:
        matrix = _qr_matrix(data)
    except Exception as exc:
        # DataOverflowError and friends
        logger.warning("QR code generation failed, using placeholder: %s", exc)
        return (
            f'<g transform="translate({x}, {y})">'
            f'<rect width="{size}" height="{size}" fill="#ffffff"/>'
            f'<text x="{size // 2}" y="{size // 2}" text-anchor="middle" font-family="Arial" '
            f'font-size="24" fill="#000000">QR</text></g>'
        )

    modules = len(matrix)
    scale = size / modules
    path = []
    for row_index, row in enumerate(matrix):
        for col_index, dark in enumerate(row):
            if dark:
                path.append(f"M{col_index} {row_index}h1v1h-1z")
    return (
        f'<g transform="translate({x}, {y}) scale({scale:.4f})">'
        f'<path d="{"".join(path)}" fill="{color}" shape-rendering="crispEdges"/></g>'
    )


def generate_namecard(name: str, email: str, linkedin_profile: Optional[str] = None) -> bytes:
    """Render the attendee namecard as SVG bytes."""
    qr_data = linkedin_profile or f"mailto:{email}"
    title = f"{EVENT_NAME.upper()} - {EVENT_DATE_LABEL}"
    qr_x = (CARD_WIDTH - QR_SIZE) // 2

    svg = f"""<svg width="{CARD_WIDTH}" height="{CARD_HEIGHT}" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <linearGradient id="bg-gradient" x1="0%" y1="0%" x2="100%" y2="100%">
      <stop offset="0%" style="stop-color:#1a1a2e"/>
      <stop offset="50%" style="stop-color:#16213e"/>
      <stop offset="100%" style="stop-color:#0f3460"/>
    </linearGradient>
  </defs>
  <rect width="{CARD_WIDTH}" height="{CARD_HEIGHT}" fill="url(#bg-gradient)"/>
  <rect x="20" y="20" width="760" height="460" fill="none" stroke="#8b5cf6" stroke-width="4"/>
  <text x="400" y="80" text-anchor="middle" font-family="Arial" font-size="32" font-weight="bold" fill="#ffffff">{html.escape(title)}</text>
  <text x="400" y="140" text-anchor="middle" font-family="Arial" font-size="48" font-weight="bold" fill="#10b981">{html.escape(name.upper())}</text>
  <text x="400" y="200" text-anchor="middle" font-family="Arial" font-size="28" fill="#ffffff">{html.escape(email)}</text>
  {qr_svg_group(qr_data, qr_x, 250)}
</svg>"""
    return svg.encode("utf-8")


def namecard_filename(name: str) -> str:
    safe = "".join(ch if ch.isascii() and ch.isalnum() else "_" for ch in name)
    return f"{safe}_namecard.svg"
