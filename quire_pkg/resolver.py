"""
Collection membership and permalink resolution.

A unit belongs to the collection whose source root contains it, or to no
collection at all (a standalone page). Its output path comes from the
collection's permalink pattern, the site default, or its own ``permalink``.
"""

import logging
import posixpath
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import AmbiguousCollectionError, DuplicateOutputPathError
from .models import Collection, ContentUnit
from .utils import normalize_output_path, output_file, parse_date, slugify

PLACEHOLDER_RE = re.compile(r':([A-Za-z_][A-Za-z0-9_]*)')
DATED_FILENAME_RE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})-(.+)$')

DEFAULT_PERMALINK = '/:path/'


class OutputRegistry:
    """
    Claims output paths on behalf of their sources.

    The first claim on a path wins; a later claim on the same file raises
    DuplicateOutputPathError instead of overwriting. ``/about/`` and
    ``/about/index.html`` are the same file.
    """

    def __init__(self):
        self._claims: Dict[str, Tuple[str, str]] = {}

    def claim(self, path: str, source: str) -> str:
        key = output_file(path)
        if key in self._claims:
            claimed_path, owner = self._claims[key]
            raise DuplicateOutputPathError(claimed_path, owner, source)
        self._claims[key] = (path, source)
        return path

    def owner(self, path: str) -> Optional[str]:
        claim = self._claims.get(output_file(path))
        return claim[1] if claim else None

    def __contains__(self, path):
        return output_file(path) in self._claims

    def __len__(self):
        return len(self._claims)


def split_dated_filename(stem: str):
    """Split ``2024-03-01-hello`` into (date, 'hello'); (None, stem) otherwise."""
    match = DATED_FILENAME_RE.match(stem)
    if not match:
        return None, stem
    year, month, day, rest = match.groups()
    return parse_date(f"{year}-{month}-{day}"), rest


def apply_filename_defaults(unit: ContentUnit) -> None:
    """Fill ``date`` from a dated filename when metadata lacks it."""
    file_date, _ = split_dated_filename(unit.stem)
    if file_date is not None and 'date' not in unit.metadata:
        unit.metadata['date'] = file_date


def unit_slug(unit: ContentUnit) -> str:
    if unit.metadata.get('slug'):
        return str(unit.metadata['slug'])
    _, name = split_dated_filename(unit.stem)
    return slugify(name) or 'index'


def permalink_variables(unit: ContentUnit, collection: Optional[Collection], pattern: str) -> Dict[str, str]:
    """Compute the values substituted into a permalink pattern for one unit."""
    metadata = unit.metadata
    variables: Dict[str, str] = {}

    for key, value in metadata.items():
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            variables[str(key)] = slugify(value)

    relative = unit.source_path
    if collection and collection.source:
        relative = posixpath.relpath(unit.source_path, collection.source)
    path = posixpath.splitext(relative)[0]
    if posixpath.basename(path) == 'index' and pattern.endswith('/'):
        path = posixpath.dirname(path)

    slug = unit_slug(unit)
    variables.update({
        'path': path,
        'slug': slug,
        'name': unit.stem,
        'title': slugify(metadata.get('title') or '') or slug,
        'collection': collection.name if collection else '',
    })

    categories = metadata.get('categories') or metadata.get('category') or []
    if isinstance(categories, str):
        categories = categories.split()
    variables['categories'] = '/'.join(slugify(c) for c in categories)

    published = parse_date(metadata.get('date'))
    if published is not None:
        variables.update({
            'year': f"{published.year:04d}",
            'month': f"{published.month:02d}",
            'day': f"{published.day:02d}",
        })
    return variables


def expand_permalink(pattern: str, variables: Dict[str, str]) -> str:
    """Substitute ``:name`` placeholders; unknown names expand to nothing."""
    return PLACEHOLDER_RE.sub(lambda match: variables.get(match.group(1), ''), pattern)


class CollectionResolver:
    """Assigns units to collections and computes their output paths."""

    def __init__(self, collections: Optional[Dict[str, Collection]] = None, default_permalink: str = None):
        self.collections = dict(collections or {})
        self.default_permalink = default_permalink or DEFAULT_PERMALINK
        self.logger = logging.getLogger('Quire.Resolver')

    def collection_for(self, unit: ContentUnit) -> Optional[Collection]:
        matches = [
            collection for collection in self.collections.values()
            if self._contains(collection.source, unit.source_path)
        ]
        if len(matches) > 1:
            raise AmbiguousCollectionError(unit.source_path, sorted(c.name for c in matches))
        return matches[0] if matches else None

    @staticmethod
    def _contains(root: str, source_path: str) -> bool:
        if not root:
            return True
        return source_path == root or source_path.startswith(root + '/')

    def permalink_for(self, unit: ContentUnit, collection: Optional[Collection]) -> str:
        explicit = unit.metadata.get('permalink')
        if explicit:
            pattern = str(explicit)
        elif collection and collection.permalink:
            pattern = collection.permalink
        else:
            pattern = self.default_permalink
        expanded = expand_permalink(pattern, permalink_variables(unit, collection, pattern))
        return normalize_output_path(expanded, unit.source_path)

    def assign(self, units: Iterable[ContentUnit],
               registry: Optional[OutputRegistry] = None) -> Dict[ContentUnit, Tuple[Optional[str], str]]:
        """
        Resolve collection membership and output path for every unit.

        Units are visited in lexicographic source path order, so the first
        unit to claim a path keeps it and any later one fails.
        """
        registry = registry if registry is not None else OutputRegistry()
        assignments: Dict[ContentUnit, Tuple[Optional[str], str]] = {}
        for unit in sorted(units, key=lambda u: u.source_path):
            collection = self.collection_for(unit)
            path = self.permalink_for(unit, collection)
            registry.claim(path, unit.source_path)
            assignments[unit] = (collection.name if collection else None, path)
            self.logger.debug(f"{unit.source_path} -> {path}")
        return assignments


def assign(units: Iterable[ContentUnit], collection_defs, default_permalink: str = None,
           registry: Optional[OutputRegistry] = None) -> Dict[ContentUnit, Tuple[Optional[str], str]]:
    """Functional form of CollectionResolver.assign taking ``collections:`` settings."""
    collections = {name: Collection.from_settings(name, definition)
                   for name, definition in (collection_defs or {}).items()}
    return CollectionResolver(collections, default_permalink).assign(units, registry)


def sort_units(units: List[ContentUnit], sort_by: str = 'date') -> List[ContentUnit]:
    """Order collection members: newest first by date, or by title / order."""
    by_path = sorted(units, key=lambda u: u.source_path)
    if sort_by == 'title':
        return sorted(by_path, key=lambda u: str(u.metadata.get('title', '')).lower())
    if sort_by == 'order':
        return sorted(by_path, key=lambda u: u.metadata.get('order', 1000))
    return sorted(by_path, key=lambda u: parse_date(u.metadata.get('date')) or datetime.min,
                  reverse=True)
