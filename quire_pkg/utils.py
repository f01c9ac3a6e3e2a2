"""Small helpers shared by the resolver, composer and artifact writers."""

import posixpath
import re
import unicodedata
from datetime import datetime, date, timezone
from typing import Optional

from .errors import InvalidPermalinkError

TAG_RE = re.compile(r'<[^>]+>')


def slugify(text) -> str:
    """Make a URL-safe slug: lowercase ASCII words joined by hyphens."""
    text = unicodedata.normalize('NFKD', str(text)).encode('ascii', 'ignore').decode()
    text = re.sub(r'[^\w\s-]', '', text.lower())
    return re.sub(r'[\s_-]+', '-', text).strip('-')


def parse_date(value) -> Optional[datetime]:
    """Parse a date string or date object; None when the value is not a date."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        for fmt in ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%d %H:%M:%S', '%Y-%m-%d', '%b %d, %Y']:
            try:
                return datetime.strptime(value.strip(), fmt)
            except ValueError:
                continue
    return None


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub('', html_text)


def generate_excerpt(content: str, words: int = 30) -> str:
    """Generate a plain-text excerpt from HTML content."""
    plain_text = strip_tags(content)
    parts = plain_text.split()
    if len(parts) > words:
        return ' '.join(parts[:words]) + '...'
    return ' '.join(parts)


def normalize_output_path(path: str, source: str = '<config>') -> str:
    """
    Normalize an output path to ``/a/b/`` (directory style) or ``/a/b.ext``.

    Raises:
        InvalidPermalinkError: if the path climbs out of the site root.
    """
    raw = str(path).strip()
    segments = [segment for segment in raw.split('/') if segment not in ('', '.')]
    if '..' in segments or '://' in raw:
        raise InvalidPermalinkError(source, raw)
    if not segments:
        return '/'
    normalized = '/' + '/'.join(segments)
    if raw.endswith('/') or '.' not in segments[-1]:
        normalized += '/'
    return normalized


def output_file(path: str) -> str:
    """Map an output path to the relative file it is written to."""
    relative = path.lstrip('/')
    if not relative or path.endswith('/'):
        relative = posixpath.join(relative, 'index.html')
    return relative
