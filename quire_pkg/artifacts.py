"""
Cross-unit artifacts: navigation state, sitemap, feed, redirects, robots.txt.

These need the resolved output path of every unit, so the assembler computes
them only after all units are resolved and rendered. Nothing here reads the
clock: dates come from unit metadata so repeated builds are byte-identical.
"""

import html
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple
from xml.sax.saxutils import escape

from .errors import InvalidPermalinkError
from .models import ContentUnit
from .utils import generate_excerpt, normalize_output_path, output_file, parse_date

INDEXABLE_SUFFIXES = ('/', '.html', '.htm')


def _output_key(path) -> Optional[str]:
    """Comparable form of an internal link target; None for external links."""
    path = str(path or '').split('#', 1)[0].split('?', 1)[0]
    if not path.startswith('/') or path.startswith('//'):
        return None
    try:
        return output_file(normalize_output_path(path))
    except InvalidPermalinkError:
        return None


def navigation_state(tree, current_path: Optional[str]) -> List[Dict[str, Any]]:
    """
    Mark a navigation tree for the page at current_path.

    An entry is ``current`` when its target is the page itself and ``active``
    when it or one of its descendants is current.
    """
    current_key = _output_key(current_path) if current_path else None
    entries = []
    for entry in tree or ():
        if not isinstance(entry, Mapping):
            continue
        target = entry.get('target') or entry.get('url') or entry.get('path') or ''
        children = navigation_state(entry.get('children'), current_path)
        is_current = current_key is not None and _output_key(target) == current_key
        item = dict(entry)
        item.update({
            'label': entry.get('label') or entry.get('title') or '',
            'target': target,
            'url': target,
            'current': is_current,
            'active': is_current or any(child['active'] for child in children),
            'children': children,
        })
        entries.append(item)
    return entries


def is_indexable(unit: ContentUnit) -> bool:
    metadata = unit.metadata
    if metadata.get('sitemap') is False or metadata.get('noindex'):
        return False
    return bool(unit.output_path) and unit.output_path.endswith(INDEXABLE_SUFFIXES)


def sitemap_paths(units: Iterable[ContentUnit]) -> List[str]:
    """Sorted output paths of every indexable unit."""
    return sorted(unit.output_path for unit in units if is_indexable(unit))


def format_xml_sitemap_entry(url: str, lastmod: Optional[datetime]) -> str:
    """Format a single sitemap entry."""
    entry = f"<url>\n<loc>{escape(url)}</loc>\n"
    if lastmod is not None:
        entry += f"<lastmod>{lastmod.strftime('%Y-%m-%d')}</lastmod>\n"
    return entry + "</url>\n"


def sitemap_xml(units: Iterable[ContentUnit], site_url: str) -> str:
    """Generate the XML sitemap for every indexable unit."""
    by_path = {unit.output_path: unit for unit in units if is_indexable(unit)}
    base = site_url.rstrip('/')
    sitemap_content = '''<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
'''
    for path in sorted(by_path):
        metadata = by_path[path].metadata
        lastmod = parse_date(metadata.get('last_modified_at') or metadata.get('date'))
        sitemap_content += format_xml_sitemap_entry(f"{base}{path}", lastmod)
    sitemap_content += '</urlset>\n'
    return sitemap_content


def feed_items(units: Iterable[ContentUnit], collection: str, limit: Optional[int] = 20) -> List[Dict[str, Any]]:
    """Newest-first entries of one collection, ties broken by output path."""
    members = [unit for unit in units if unit.collection == collection]
    members.sort(key=lambda unit: unit.output_path)
    members.sort(key=lambda unit: parse_date(unit.metadata.get('date')) or datetime.min, reverse=True)
    if limit:
        members = members[:int(limit)]

    items = []
    for unit in members:
        metadata = unit.metadata
        raw_description = metadata.get('excerpt') or metadata.get('description') \
            or generate_excerpt(unit.content or '')
        # Clean the description for XML
        description = html.unescape(str(raw_description))
        description = re.sub(r'<.*?>', '', description)
        description = re.sub(r'\s+', ' ', description).strip()
        items.append({
            'title': str(metadata.get('title') or 'Untitled'),
            'path': unit.output_path,
            'date': parse_date(metadata.get('date')),
            'description': description,
            'source': unit.source_path,
        })
    return items


def _rfc822(value: datetime) -> str:
    return format_datetime(value.replace(tzinfo=timezone.utc))


def rss_feed(items: List[Dict[str, Any]], site_url: str, site_name: str, description: Optional[str] = None) -> str:
    """Generate an RSS 2.0 feed from feed items."""
    base = site_url.rstrip('/')
    dates = [item['date'] for item in items if item['date'] is not None]
    rss_content = f'''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
<channel>
<title>{escape(site_name)}</title>
<link>{escape(base + '/')}</link>
<description>{escape(description or f"Latest posts from {site_name}")}</description>
'''
    if dates:
        rss_content += f"<lastBuildDate>{_rfc822(max(dates))}</lastBuildDate>\n"

    for item in items:
        link = escape(f"{base}{item['path']}")
        rss_content += f'''<item>
<title>{escape(item['title'])}</title>
<link>{link}</link>
<description>{escape(item['description'])}</description>
'''
        if item['date'] is not None:
            rss_content += f"<pubDate>{_rfc822(item['date'])}</pubDate>\n"
        rss_content += f"<guid>{link}</guid>\n</item>\n"

    rss_content += '''</channel>
</rss>
'''
    return rss_content


def collect_redirects(units: Iterable[ContentUnit]) -> List[Tuple[str, str, str]]:
    """
    Gather ``redirect_from`` entries as (old path, new path, source) triples,
    in source path order.
    """
    redirects = []
    for unit in sorted(units, key=lambda u: u.source_path):
        old_paths = unit.metadata.get('redirect_from') or []
        if isinstance(old_paths, str):
            old_paths = [old_paths]
        for old_path in old_paths:
            redirects.append((normalize_output_path(old_path, unit.source_path), unit.output_path,
                              unit.source_path))
    return redirects


def redirect_page(target: str) -> str:
    """Stub page that forwards visitors to target."""
    target = html.escape(target, quote=True)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta http-equiv="refresh" content="0; url={target}">
    <link rel="canonical" href="{target}">
    <meta name="robots" content="noindex">
    <title>Redirecting ...</title>
</head>
<body>
    <p>If you are not redirected automatically, <a href="{target}">click here</a>.</p>
</body>
</html>
"""


def robots_txt(mode: str = 'public', site_url: Optional[str] = None) -> Optional[str]:
    """robots.txt content for the robots setting, or None to emit nothing."""
    if mode == 'none' or mode is False:
        return None
    if mode == 'private':
        return "User-agent: *\nDisallow: /\n"
    robots_content = "User-agent: *\nAllow: /\n"
    if site_url:
        robots_content += f"\nSitemap: {site_url.rstrip('/')}/sitemap.xml\n"
    return robots_content
