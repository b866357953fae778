"""
Registration notification content.

Builds the HTML and plain-text bodies sent after a completed purchase:
the purchased item, one row per registration key with its session
title and registration link, and the reminder that registration must
use the purchase address.
"""

import html
from dataclasses import dataclass
from typing import Sequence

from shared.catalog import Catalog

REGISTRATION_SUBJECT = "AI FES. Your Zoom registration links"

PENDING_LINK_TEXT = "Registration link will be sent separately"


@dataclass(frozen=True)
class NotificationContent:
    html: str
    text: str


def build_registration_email(
    display_name: str,
    registration_keys: Sequence[str],
    catalog: Catalog,
    support_url: str = "",
) -> NotificationContent:
    """Render the registration email for an ordered list of keys."""
    rows = []
    lines = []
    for key in registration_keys:
        title = catalog.registration_title(key)
        url = catalog.registration_url(key)
        if url:
            link_html = (
                f'<a href="{html.escape(url, quote=True)}" '
                'style="color:#007bff;text-decoration:none;">Register on Zoom</a>'
            )
            link_text = url
        else:
            link_html = html.escape(PENDING_LINK_TEXT)
            link_text = PENDING_LINK_TEXT
        rows.append(
            '<tr><td style="padding:16px;border-bottom:1px solid #e9ecef;">'
            f'<p style="margin:0 0 8px 0;font-weight:600;">{html.escape(title)}</p>'
            f'<p style="margin:0;">{link_html}</p>'
            "</td></tr>"
        )
        lines.append(f"- {title}\n  {link_text}")

    support_html = ""
    support_text = ""
    if support_url:
        support_html = (
            '<p style="color:#666;font-size:14px;">Questions? '
            f'<a href="{html.escape(support_url, quote=True)}">Contact us</a></p>'
        )
        support_text = f"\n\nQuestions? Contact us: {support_url}"

    html_body = (
        '<html><body style="font-family:system-ui,sans-serif;max-width:600px;margin:0 auto;padding:20px;">'
        f'<h1 style="color:#1e293b;">{html.escape(REGISTRATION_SUBJECT)}</h1>'
        '<p style="color:#475569;font-size:16px;">Thank you for your purchase.</p>'
        '<h2 style="font-size:18px;">Purchased item</h2>'
        f'<p style="padding:16px;background:#e9ecef;border-radius:4px;">{html.escape(display_name)}</p>'
        '<h2 style="font-size:18px;">Zoom registration links</h2>'
        '<table style="width:100%;border-collapse:collapse;border:1px solid #e9ecef;">'
        f'{"".join(rows)}'
        "</table>"
        '<p style="color:#dc2626;font-size:14px;"><strong>Important:</strong> '
        "register on Zoom with this email address. Other addresses cannot join.</p>"
        '<p style="color:#475569;font-size:14px;">Session recordings will be available in the archive.</p>'
        f"{support_html}"
        "</body></html>"
    )

    text_body = (
        f"{REGISTRATION_SUBJECT}\n\n"
        "Thank you for your purchase.\n\n"
        f"Purchased item: {display_name}\n\n"
        "Zoom registration links:\n"
        + "\n".join(lines)
        + "\n\nIMPORTANT: register on Zoom with this email address. "
        "Other addresses cannot join."
        + support_text
    )

    return NotificationContent(html=html_body, text=text_body)
