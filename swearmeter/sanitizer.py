import re

# Order matters: URLs first (they may contain @), then mentions, then emails.
# A mention needs a non-word char (or start) before the @, so bob@example.com stays an email.
_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_MENTION_RE = re.compile(r"(?<![\w.+-])@\w+(?:@[\w-]+(?:\.[\w-]+)+)?")
_EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.\w+")
_PHONE_RE = re.compile(r"(?<!\w)(?:\+?1[-. ]?)?\(?\d{3}\)?[-. ]?\d{3}[-. ]?\d{4}\b")
_WS_RE = re.compile(r"\s+")

URL_TOKEN = "[URL]"
USER_TOKEN = "[USER]"
EMAIL_TOKEN = "[EMAIL]"
PHONE_TOKEN = "[PHONE]"


def sanitize_text(text) -> str:
    """
    Strip PII-like substrings and collapse whitespace.
    Match positions downstream are offsets into this output, not into the raw text.
    """
    if not isinstance(text, str) or not text:
        return ""
    out = _URL_RE.sub(URL_TOKEN, text)
    out = _MENTION_RE.sub(USER_TOKEN, out)
    out = _EMAIL_RE.sub(EMAIL_TOKEN, out)
    out = _PHONE_RE.sub(PHONE_TOKEN, out)
    return _WS_RE.sub(" ", out).strip()
