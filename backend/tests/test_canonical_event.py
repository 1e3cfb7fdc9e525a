from types import SimpleNamespace


def _email(**fields):
    base = {
        "id": 7,
        "thread_id": "t-1",
        "subject": "Hello",
        "from_email": "a@example.com",
        "from_name": "A",
        "email_date": None,
        "body_preview": None,
        "body_html": None,
        "snippet": None,
    }
    base.update(fields)
    return SimpleNamespace(**base)


def test_reply_chain_and_quoted_lines_are_dropped():
    from signals.facts.canonical_event import canonicalize_text

    raw = "Thanks for your time.\r\n> quoted line\nSee you Friday.\n\nOn Mon, Jan 26, 2026 at 9:00 AM Riley wrote:\n> earlier message"
    assert canonicalize_text(raw) == "Thanks for your time. See you Friday."


def test_original_message_separator_truncates():
    from signals.facts.canonical_event import canonicalize_text

    raw = "Top reply\n-----Original Message-----\nFrom: someone"
    assert canonicalize_text(raw) == "Top reply"


def test_body_source_priority_preview_then_html_then_snippet():
    from signals.facts.canonical_event import build_canonical_event

    ev = build_canonical_event(_email(body_preview="preview text", body_html="<p>html</p>", snippet="snip"))
    assert ev["body"]["text"] == "preview text"
    assert ev["body"]["source"] == "body_preview"

    ev = build_canonical_event(_email(body_html="<p>Hello&nbsp;<b>there</b></p><style>p{}</style>", snippet="snip"))
    assert ev["body"]["source"] == "body_html"
    assert ev["body"]["text"] == "Hello there"
    assert ev["body"]["normalization"]["html_stripped"] is True

    ev = build_canonical_event(_email(snippet="just a snippet"))
    assert ev["body"]["text"] == "just a snippet"
    assert ev["body"]["source"] == "snippet"


def test_empty_email_still_yields_event():
    from signals.facts.canonical_event import build_canonical_event

    ev = build_canonical_event(_email(subject=None))
    assert ev["body"]["text"] == ""
    assert ev["subject"] == ""
    assert ev["links"] == []


def test_links_are_unique_and_capped():
    from signals.facts.canonical_event import MAX_LINKS, extract_links

    text = "a https://x.com/1 b https://x.com/1 " + " ".join(f"https://x.com/p{i}" for i in range(80))
    links = extract_links(text)
    assert links[0] == {"url": "https://x.com/1", "label_hint": None}
    assert len(links) == MAX_LINKS
    assert len({link["url"] for link in links}) == MAX_LINKS


def test_canonical_text_is_deterministic():
    from signals.facts.canonical_event import build_canonical_event

    email = _email(body_html="<div>Line one<br>Line   two</div>\n\nOn Tue someone wrote:\nold")
    assert build_canonical_event(email) == build_canonical_event(email)


def test_naive_datetimes_are_rendered_as_utc():
    from datetime import datetime
    from signals.facts.canonical_event import build_canonical_event

    ev = build_canonical_event(_email(email_date=datetime(2026, 1, 26, 17, 4)))
    assert ev["email_date"] == "2026-01-26T17:04:00Z"
    assert ev["received_at"] == ev["email_date"]


def test_event_validates_against_schema():
    from signals.contracts.schema_validator import JsonSchemaValidator
    from signals.facts.canonical_event import build_canonical_event

    validator = JsonSchemaValidator("gleania://signals/contracts/schemas/components/event/canonical_email_event.schema.json")
    ev = build_canonical_event(_email(body_preview="Apply here https://jobs.example.com/1"))
    assert validator.errors_for(ev) == []
