"""Data types shared across the build pipeline."""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MARKDOWN_EXTENSIONS = ('.md', '.markdown')
HTML_EXTENSIONS = ('.html', '.htm')


@dataclass(eq=False)
class ContentUnit:
    """
    One source document destined to become one output page.

    Identity is the source path (POSIX, relative to the source root), so two
    units parsed from the same file compare equal.
    """
    source_path: str
    body: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    output_path: Optional[str] = None
    collection: Optional[str] = None
    content: Optional[str] = None
    html: Optional[str] = None

    def __eq__(self, other):
        if not isinstance(other, ContentUnit):
            return NotImplemented
        return self.source_path == other.source_path

    def __hash__(self):
        return hash(self.source_path)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.source_path)[1].lower()

    @property
    def is_markdown(self) -> bool:
        return self.extension in MARKDOWN_EXTENSIONS

    @property
    def stem(self) -> str:
        return os.path.splitext(os.path.basename(self.source_path))[0]


@dataclass
class Collection:
    """A named grouping of units sharing a source root and permalink pattern."""
    name: str
    source: str
    permalink: Optional[str] = None
    layout: Optional[str] = None
    sort_by: str = 'date'
    units: List[ContentUnit] = field(default_factory=list)

    @classmethod
    def from_settings(cls, name, definition):
        """Build a collection from its ``collections:`` entry in the site config."""
        definition = definition or {}
        source = definition.get('source') or f'_{name}'
        return cls(
            name=name,
            source=str(source).strip('/'),
            permalink=definition.get('permalink'),
            layout=definition.get('layout'),
            sort_by=definition.get('sort_by', 'date'),
        )


@dataclass(frozen=True)
class Layout:
    name: str
    template: str
    parent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    source_path: Optional[str] = None


@dataclass(frozen=True)
class Fragment:
    name: str
    template: str
    source_path: Optional[str] = None


@dataclass
class BuildResult:
    """
    Everything a build produces, held in memory until it is published.

    outputs maps unit output paths to final HTML. documents holds generated
    files that are not content units (sitemap, feed, robots.txt, redirect
    stubs, compiled stylesheets). static_files maps output paths to the source
    files copied unchanged.
    """
    outputs: Dict[str, str] = field(default_factory=dict)
    artifacts: Dict[str, Any] = field(default_factory=dict)
    documents: Dict[str, str] = field(default_factory=dict)
    static_files: Dict[str, str] = field(default_factory=dict)
    units: List[ContentUnit] = field(default_factory=list)

    @property
    def navigation(self):
        return self.artifacts.get('navigation', {})

    @property
    def sitemap(self):
        return self.artifacts.get('sitemap', [])

    @property
    def feed(self):
        return self.artifacts.get('feed', [])

    @property
    def redirects(self):
        return self.artifacts.get('redirects', {})
