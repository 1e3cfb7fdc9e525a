"""URL normalization shared by the job-listing handlers."""
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = {"ref", "source"}


def _is_tracking(key: str) -> bool:
    k = key.lower()
    return k.startswith("utm_") or k in TRACKING_PARAMS


def normalize_url(url: Optional[str]) -> Optional[str]:
    """
    Strip tracking query params (utm_*, ref, source).

    Malformed or relative URLs come back trimmed but otherwise untouched.
    Normalizing an already-normalized URL returns it unchanged.
    """
    if url is None:
        return None
    raw = str(url).strip()
    if not raw:
        return None
    try:
        parts = urlsplit(raw)
        if not parts.scheme or not parts.netloc:
            return raw
        if not parts.query:
            return raw
        pairs = parse_qsl(parts.query, keep_blank_values=True)
        kept = [(k, v) for k, v in pairs if not _is_tracking(k)]
        if len(kept) == len(pairs):
            return raw
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(kept), parts.fragment))
    except ValueError:
        return raw
