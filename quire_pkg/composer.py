"""
Template composition for a single content unit.

The unit body is rendered first (as a template, then through the Markdown
renderer), then each layout of its chain wraps the result through the
``content`` variable, innermost layout first. Fragments are pulled in with
``{{ fragment('name.html', key=value) }}``.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from jinja2 import ChainableUndefined, Environment, TemplateError

from .artifacts import navigation_state
from .errors import BuildError, FragmentCycleError, TemplateRenderError, UnknownFragmentError
from .models import ContentUnit, Fragment, Layout
from .renderers import MistuneRenderer
from .resolver import unit_slug
from .utils import generate_excerpt, parse_date, slugify


def lookup_scopes(metadata: Mapping, config: Mapping, data_tables: Mapping) -> Tuple[Mapping, ...]:
    """Name resolution scopes, highest precedence first."""
    return (metadata, config, data_tables)


def lookup(name: str, metadata: Mapping, config: Mapping, data_tables: Mapping):
    """
    Resolve an unbound template name: unit metadata, then site config, then
    data tables. Anything else is undefined and renders as empty text.
    """
    for scope in lookup_scopes(metadata, config, data_tables):
        if scope is not None and name in scope:
            return scope[name]
    return ChainableUndefined(name=name)


def page_variables(unit: ContentUnit) -> Dict[str, Any]:
    """The ``page`` mapping a template sees for a unit."""
    page = dict(unit.metadata)
    page.update({
        'url': unit.output_path,
        'path': unit.source_path,
        'collection': unit.collection,
        'slug': unit_slug(unit),
    })
    published = parse_date(unit.metadata.get('date'))
    if published is not None:
        page['date'] = published
    return page


class TemplateComposer:
    """
    Renders content units through their layout chains.

    Layouts, fragments, site config, data tables and the collections index
    are fixed at construction and never mutated, so one composer can render
    units from several threads at once.
    """

    def __init__(self, layouts: Dict[str, Layout], fragments: Dict[str, Fragment], config: Mapping,
                 data_tables: Mapping, renderer=None, collections_index: Optional[Mapping] = None,
                 navigation_table: str = 'navigation'):
        self.layouts = layouts
        self.fragments = fragments
        self.config = config
        self.data_tables = data_tables
        self.renderer = renderer or MistuneRenderer()
        self.collections_index = collections_index or {}
        self.navigation_table = navigation_table
        self.logger = logging.getLogger('Quire.Composer')

        self.env = Environment(undefined=ChainableUndefined, autoescape=False, keep_trailing_newline=True,
                               finalize=lambda value: '' if value is None else value)
        self.env.filters.update({
            'absolute_url': self.absolute_url,
            'relative_url': self.relative_url,
            'slugify': slugify,
            'markdownify': self.renderer.render,
            'date_format': self.format_date,
            'xml_escape': lambda value: escape(str(value)),
            'excerpt': generate_excerpt,
        })

        # Layouts and fragments compile once, before any unit renders.
        self._layout_templates = {
            name: self._compile(layout.template, layout.source_path or f"layout {name}")
            for name, layout in layouts.items()
        }
        self._fragment_templates = {
            name: self._compile(fragment.template, fragment.source_path or f"fragment {name}")
            for name, fragment in fragments.items()
        }

    def absolute_url(self, path) -> str:
        path = str(path or '')
        if path.startswith(('http://', 'https://', '//')):
            return path
        base = (self.config.get('url') or '').rstrip('/')
        return f"{base}/{path.lstrip('/')}"

    def relative_url(self, path) -> str:
        path = str(path or '')
        if path.startswith(('http://', 'https://', '//', '#')):
            return path
        return '/' + path.lstrip('/')

    def format_date(self, value, fmt: str = '%B %d, %Y') -> str:
        """Format a date for display; empty when the value is not a date."""
        parsed = parse_date(value)
        return parsed.strftime(fmt) if parsed else ''

    def _compile(self, source: str, origin: str):
        try:
            return self.env.from_string(source)
        except TemplateError as e:
            raise TemplateRenderError(origin, e) from e

    def namespace(self, unit: ContentUnit) -> Dict[str, Any]:
        """Build the variable namespace for one unit."""
        namespace: Dict[str, Any] = {}
        # Lowest precedence first so later scopes win.
        for scope in reversed(lookup_scopes(unit.metadata, self.config, self.data_tables)):
            if scope is None:
                continue
            namespace.update((key, value) for key, value in scope.items() if isinstance(key, str))

        tree = self.data_tables.get(self.navigation_table) if self.navigation_table else None
        namespace.update({
            'page': page_variables(unit),
            'site': self.config,
            'data': self.data_tables,
            'collections': self.collections_index,
            'navigation': navigation_state(tree, unit.output_path),
        })
        return namespace

    def compose(self, unit: ContentUnit, layout_chain: Sequence[Layout]) -> Tuple[str, str]:
        """
        Render a unit, returning (content, html): the body alone and the body
        wrapped by every layout of the chain.
        """
        namespace = self.namespace(unit)

        body = unit.body
        if unit.metadata.get('render_template', True):
            body = self._render(self._compile(body, unit.source_path), namespace, (), unit.source_path)
        content = self.renderer.render(body) if unit.is_markdown else body

        html = content
        for layout in layout_chain:
            template = self._layout_templates.get(layout.name)
            origin = layout.source_path or f"layout {layout.name}"
            if template is None:
                template = self._compile(layout.template, origin)
            scope = dict(namespace)
            scope['content'] = html
            scope['layout'] = layout.metadata
            html = self._render(template, scope, (), origin)

        self.logger.debug(f"Rendered {unit.source_path} through {len(layout_chain)} layout(s)")
        return content, html

    def render(self, unit: ContentUnit, layout_chain: Sequence[Layout]) -> str:
        return self.compose(unit, layout_chain)[1]

    def _fragment_key(self, name: str) -> Optional[str]:
        for candidate in (name, f"{name}.html"):
            if candidate in self.fragments:
                return candidate
        return None

    def include(self, name: str, ambient: Dict[str, Any], bindings: Optional[Dict[str, Any]] = None,
                stack: Tuple[str, ...] = (), origin: Optional[str] = None) -> str:
        """
        Render fragment ``name`` with the ambient namespace plus explicit bindings.

        ``stack`` holds the fragments already being rendered on this path;
        meeting one of them again is a cycle.
        """
        key = self._fragment_key(str(name))
        if key is None:
            raise UnknownFragmentError(str(name), origin)
        if key in stack:
            raise FragmentCycleError(stack[stack.index(key):] + (key,), origin)

        namespace = dict(ambient)
        namespace.update(bindings or {})
        fragment = self.fragments[key]
        return self._render(self._fragment_templates[key], namespace, stack + (key,),
                            fragment.source_path or f"fragment {key}")

    def _fragment_function(self, ambient: Dict[str, Any], stack: Tuple[str, ...], origin: str):
        def fragment(name, **bindings):
            return self.include(name, ambient, bindings, stack, origin)
        return fragment

    def _render(self, template, namespace: Dict[str, Any], stack: Tuple[str, ...], origin: str) -> str:
        context = dict(namespace)
        context['fragment'] = self._fragment_function(namespace, stack, origin)
        try:
            return template.render(context)
        except BuildError:
            raise
        except Exception as e:
            raise TemplateRenderError(origin, e) from e


def render(unit: ContentUnit, layout_chain: Sequence[Layout], fragments: Dict[str, Fragment],
           config: Mapping, data_tables: Mapping, renderer=None) -> str:
    """One-shot composition for a single unit."""
    layouts = {layout.name: layout for layout in layout_chain}
    return TemplateComposer(layouts, fragments, config, data_tables, renderer).render(unit, layout_chain)
