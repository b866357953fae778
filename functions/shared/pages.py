"""
HTML pages for the archive flow.

Kept deliberately plain: the archive page lists one card per granted
session, and the error page shows a single message with a link back to
the sign-in form.
"""

import html
from typing import Sequence

from shared.catalog import Catalog

ARCHIVE_FORM_PATH = "/archive"

_STYLE = (
    "body{font-family:system-ui,sans-serif;background:#0a0a0a;color:#e0e0e0;"
    "max-width:960px;margin:0 auto;padding:40px 20px;}"
    ".card{background:rgba(255,255,255,0.04);border:1px solid rgba(255,255,255,0.08);"
    "border-radius:16px;padding:24px;margin-bottom:24px;}"
    ".meta{color:#999;font-size:14px;}"
    ".video{position:relative;padding-top:56.25%;}"
    ".video iframe{position:absolute;top:0;left:0;width:100%;height:100%;border:0;}"
    ".notice{color:#ffc107;}"
)


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        '<meta name="viewport" content="width=device-width, initial-scale=1">'
        f"<title>{html.escape(title)}</title><style>{_STYLE}</style></head>"
        f"<body>{body}</body></html>"
    )


def render_archive_page(session_keys: Sequence[str], catalog: Catalog) -> str:
    cards = []
    for key in session_keys:
        session = catalog.archive_sessions.get(key)
        if session is None:
            continue
        if session.video_id:
            media = (
                '<div class="video"><iframe src="https://www.youtube.com/embed/'
                f'{html.escape(session.video_id, quote=True)}" allowfullscreen></iframe></div>'
            )
        else:
            media = f'<p class="notice">{html.escape(session.coming_soon or "Coming soon")}</p>'
        cards.append(
            '<div class="card">'
            f"<h2>{html.escape(key)}. {html.escape(session.title)}</h2>"
            f'<p class="meta">{html.escape(session.duration)}</p>'
            f"{media}</div>"
        )

    return _page("AI FES. Archive", "<h1>AI FES. Archive</h1>" + "".join(cards))


def render_error_page(message: str) -> str:
    body = (
        '<div class="card">'
        "<h2>Unable to show the archive</h2>"
        f"<p>{html.escape(message)}</p>"
        f'<p><a href="{ARCHIVE_FORM_PATH}">Back</a></p>'
        "</div>"
    )
    return _page("AI FES. Archive", body)
