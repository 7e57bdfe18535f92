from __future__ import annotations

import re

_DOMAIN_PATTERN = re.compile(r"://(.+?)/")


def domain_from(url: str) -> str:
    """Return the host part between ``://`` and the next ``/``.

    URLs without that shape (``data:``, ``about:blank``) are returned unchanged.
    """
    match = _DOMAIN_PATTERN.search(url)
    if match is None:
        return url
    return match.group(1)


def strip_apostrophes(keyword: str | None) -> str | None:
    if keyword is None:
        return None
    return keyword.replace("'", "")
