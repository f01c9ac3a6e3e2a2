"""
Layout and fragment tables, and layout chain resolution.

Layouts live in ``_layouts`` and fragments in ``_includes``. Both are kept in
name-keyed tables; parent links are plain names, so the chain is resolved by
lookup with an explicit visited list rather than by object references.
"""

import logging
import os
from typing import Dict, List, Optional

from .errors import BuildError, LayoutCycleError, UnknownLayoutError
from .frontmatter import parse_front_matter
from .models import Fragment, Layout

TEMPLATE_EXTENSIONS = ('.html', '.htm', '.xml', '.txt', '.md', '.svg', '.json')
NO_LAYOUT = ('none', 'null', 'false')


def _walk_templates(directory: str):
    """Yield (relative posix path, absolute path) for template files, sorted."""
    for root, dirs, files in os.walk(directory):
        dirs[:] = sorted(d for d in dirs if not d.startswith('.'))
        for filename in sorted(files):
            if filename.startswith('.'):
                continue
            if os.path.splitext(filename)[1].lower() not in TEMPLATE_EXTENSIONS:
                continue
            path = os.path.join(root, filename)
            yield os.path.relpath(path, directory).replace(os.sep, '/'), path


def _read(path: str) -> str:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except (IOError, OSError, UnicodeDecodeError) as e:
        raise BuildError(f"{path}: cannot read template: {e}") from e


def load_layouts(layouts_dir: Optional[str]) -> Dict[str, Layout]:
    """
    Load every layout under layouts_dir, keyed by its path without extension.

    A layout names its parent with ``parent:`` (or ``layout:``) in its own
    front matter.
    """
    layouts: Dict[str, Layout] = {}
    if not layouts_dir or not os.path.isdir(layouts_dir):
        return layouts
    for relative, path in _walk_templates(layouts_dir):
        name = os.path.splitext(relative)[0]
        metadata, template = parse_front_matter(_read(path), source=path)
        parent = metadata.get('parent', metadata.get('layout'))
        if parent is not None and str(parent).lower() in NO_LAYOUT:
            parent = None
        layouts[name] = Layout(
            name=name,
            template=template,
            parent=str(parent) if parent else None,
            metadata=metadata,
            source_path=path,
        )
    return layouts


def load_fragments(includes_dir: Optional[str]) -> Dict[str, Fragment]:
    """Load every fragment under includes_dir, keyed by its relative path."""
    fragments: Dict[str, Fragment] = {}
    if not includes_dir or not os.path.isdir(includes_dir):
        return fragments
    for relative, path in _walk_templates(includes_dir):
        fragments[relative] = Fragment(name=relative, template=_read(path), source_path=path)
    return fragments


class LayoutResolver:
    """Resolves a layout name into its chain of nested layouts."""

    def __init__(self, layouts: Dict[str, Layout]):
        self.layouts = layouts
        self._chains: Dict[str, List[Layout]] = {}
        self.logger = logging.getLogger('Quire.Layouts')

    def resolve_chain(self, name: str, referrer: Optional[str] = None) -> List[Layout]:
        """
        Return the layouts wrapping a unit that declares ``name``, innermost first.

        Raises:
            UnknownLayoutError: if a layout in the chain is not defined
            LayoutCycleError: if following parents revisits a layout
        """
        if name in self._chains:
            return list(self._chains[name])

        chain: List[Layout] = []
        visited: List[str] = []
        current = name
        current_referrer = referrer
        while current is not None:
            if current in visited:
                cycle = visited[visited.index(current):] + [current]
                raise LayoutCycleError(cycle)
            layout = self.layouts.get(current)
            if layout is None:
                raise UnknownLayoutError(current, current_referrer)
            visited.append(current)
            chain.append(layout)
            current_referrer = layout.source_path or f"layout {layout.name}"
            current = layout.parent

        self._chains[name] = chain
        self.logger.debug(f"Layout chain for {name}: {' -> '.join(visited)}")
        return list(chain)

    def validate(self) -> None:
        """Resolve every defined layout so cycles fail the build even when unused."""
        for name in sorted(self.layouts):
            self.resolve_chain(name)


def resolve_chain(layouts: Dict[str, Layout], name: str) -> List[Layout]:
    return LayoutResolver(layouts).resolve_chain(name)
