import html

import bleach


def strip_markup(value: str) -> str:
    """
    Remove markup from user-typed text and trim it.

    bleach entity-escapes whatever it keeps; the text is stored and rendered
    as plain text, so the escaping is undone.
    """
    return html.unescape(bleach.clean(value or "", tags=[], strip=True)).strip()
