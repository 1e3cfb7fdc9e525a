"""
Canonical email event.

Every downstream consumer (facts extraction, planner, semantic validation)
reads the same canonical body text produced here. The transformation is a
pure function of the stored email fields.
"""
import html
import re
from typing import Any, Optional, Tuple

# Reply/forward separators; everything from the first matching line on is dropped.
REPLY_SEPARATORS = [
    re.compile(r"^On .+ wrote:$", re.IGNORECASE),
    re.compile(r"^On .+sent:$", re.IGNORECASE),
    re.compile(r"^On .+wrote$", re.IGNORECASE),
    re.compile(r"^From:\s+", re.IGNORECASE),
    re.compile(r"^Sent:\s+", re.IGNORECASE),
    re.compile(r"^To:\s+", re.IGNORECASE),
    re.compile(r"^Subject:\s+", re.IGNORECASE),
    re.compile(r"^-----Original Message-----", re.IGNORECASE),
    re.compile(r"^----- Forwarded message -----", re.IGNORECASE),
    re.compile(r"^Begin forwarded message:", re.IGNORECASE),
]

URL_RE = re.compile(r"https?://[^\s<>\"')]+", re.IGNORECASE)
MAX_LINKS = 50


def _present(value: Optional[str]) -> bool:
    return bool(value and str(value).strip())


def strip_html(raw: str) -> str:
    """Drop tags and decode entities."""
    text = re.sub(r"(?is)<(script|style)[^>]*>.*?</\1>", " ", raw or "")
    text = re.sub(r"<[^>]+>", " ", text)
    return html.unescape(text)


def best_body_source(email: Any) -> Tuple[str, str]:
    """Preview text, then HTML (stripped), then snippet."""
    if _present(getattr(email, "body_preview", None)):
        return str(email.body_preview), "body_preview"
    if _present(getattr(email, "body_html", None)):
        return strip_html(str(email.body_html)), "body_html"
    return str(getattr(email, "snippet", None) or ""), "snippet"


def canonicalize_text(text: Optional[str]) -> str:
    if not _present(text):
        return ""
    lines = re.sub(r"\r\n?", "\n", str(text)).split("\n")
    cutoff = None
    for i, line in enumerate(lines):
        stripped = line.strip()
        if any(rx.search(stripped) for rx in REPLY_SEPARATORS):
            cutoff = i
            break
    kept = lines[:cutoff] if cutoff is not None else lines
    kept = [line for line in kept if not line.lstrip().startswith(">")]
    return re.sub(r"\s+", " ", "\n".join(kept)).strip()


def extract_links(text: str) -> list[dict]:
    seen: list[str] = []
    for url in URL_RE.findall(text or ""):
        if url not in seen:
            seen.append(url)
        if len(seen) >= MAX_LINKS:
            break
    return [{"url": url, "label_hint": None} for url in seen]


def to_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        out = value.isoformat()
        # Naive datetimes in the DB are UTC.
        if getattr(value, "tzinfo", None) is None and "T" in out:
            out += "Z"
        return out
    return str(value)


def build_canonical_event(email: Any) -> dict:
    """Build the CanonicalEmailEvent document for a SyncedEmail-like record."""
    raw_text, source = best_body_source(email)
    canonical = canonicalize_text(raw_text)
    email_date = to_iso(getattr(email, "email_date", None))
    return {
        "event_type": "email",
        "synced_email_id": email.id,
        "thread_id": getattr(email, "thread_id", None),
        "received_at": email_date,
        "email_date": email_date,
        "from": {
            "email": getattr(email, "from_email", None),
            "name": getattr(email, "from_name", None),
        },
        "to": [],
        "subject": getattr(email, "subject", None) or "",
        "body": {
            "text": canonical,
            "source": source,
            "truncated": False,
            "normalization": {
                "replies_removed": True,
                "html_stripped": source == "body_html",
                "whitespace_collapsed": True,
            },
        },
        "links": extract_links(canonical),
    }
