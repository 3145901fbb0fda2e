"""
Text and URL normalisation helpers shared by the extractor and the
duplicate detector.
"""
import hashlib
import re
import unicodedata
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS = {'fbclid', 'gclid', 'mc_cid', 'mc_eid', 'ref_src'}

_QUOTES = str.maketrans({
    '‘': "'", '’': "'", '‚': "'", '‛': "'",
    '“': '"', '”': '"', '„': '"', '‟': '"',
    '׳': "'", '״': '"',
    '–': '-', '—': '-', '―': '-', '−': '-',
    '\u00a0': ' ',
})

_URL_RE = re.compile(r'https?://\S+|www\.\S+', re.IGNORECASE)
_EMAIL_RE = re.compile(r'\S+@\S+\.\S+')
_LONG_NUMBER_RE = re.compile(r'\b\d{4,}\b')
_PUNCT_RE = re.compile(r'[^\w\s]', re.UNICODE)
_INLINE_WS_RE = re.compile(r'[ \t\r\f\v]+')


def normalize_whitespace(text: Optional[str]) -> str:
    """Normalise encoding and whitespace while keeping paragraph breaks.

    Args:
        text: Raw text, possibly with HTML-ish spacing

    Returns:
        NFC-normalised text with single spaces inside lines and at most one
        blank line between paragraphs
    """
    if not text:
        return ''
    text = unicodedata.normalize('NFC', text).replace('\u00a0', ' ').replace('\u200b', '')
    lines = [_INLINE_WS_RE.sub(' ', line).strip() for line in text.splitlines()]

    paragraphs = []
    current = []
    for line in lines:
        if line:
            current.append(line)
        elif current:
            paragraphs.append(' '.join(current))
            current = []
    if current:
        paragraphs.append(' '.join(current))
    return '\n\n'.join(paragraphs)


def canonicalize_url(url: str) -> str:
    """Strip tracking parameters, fragments and trailing slashes from a URL."""
    if not url:
        return ''
    url = url.strip()
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url

    query = [
        (key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith('utm_') and key.lower() not in TRACKING_PARAMS
    ]
    path = parts.path
    if len(path) > 1 and path.endswith('/'):
        path = path.rstrip('/')
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query), ''))


def normalize_for_hash(text: str) -> str:
    """Canonical form of article text used for content identity."""
    text = unicodedata.normalize('NFKC', text or '').translate(_QUOTES)
    text = _URL_RE.sub(' ', text)
    text = _EMAIL_RE.sub(' ', text)
    text = _LONG_NUMBER_RE.sub(' ', text)
    text = _PUNCT_RE.sub(' ', text.lower())
    return re.sub(r'\s+', ' ', text).strip()


def compute_content_hash(title: str, body: str) -> str:
    """Generate the sha256 content hash over normalised title and body."""
    normalized = f"{normalize_for_hash(title)}\n{normalize_for_hash(body)}"
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()


def domain_of(url: str) -> str:
    """Return the lower-cased host of a URL without a leading www."""
    host = urlsplit(url.strip()).hostname or ''
    return host[4:] if host.startswith('www.') else host
