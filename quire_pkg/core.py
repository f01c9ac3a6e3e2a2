import os
import shutil
import logging
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from fnmatch import fnmatch
from typing import Dict, List, Optional, Tuple

from .artifacts import (
    collect_redirects, feed_items, navigation_state, redirect_page, robots_txt,
    rss_feed, sitemap_paths, sitemap_xml,
)
from .assets import StylesheetPipeline, minified_name, minify_file
from .composer import TemplateComposer, page_variables
from .errors import BuildError
from .frontmatter import has_front_matter, parse_front_matter
from .layouts import NO_LAYOUT, LayoutResolver, load_fragments, load_layouts
from .models import HTML_EXTENSIONS, MARKDOWN_EXTENSIONS, BuildResult, Collection, ContentUnit
from .renderers import get_renderer
from .resolver import CollectionResolver, OutputRegistry, apply_filename_defaults, sort_units
from .settings import QuireSettings, SiteConfig, freeze, load_config, load_data_tables
from .utils import normalize_output_path, output_file

# Minimum unit count for rendering on a thread pool
PARALLEL_THRESHOLD = 12


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    def filter(self, record):
        if record.levelno > logging.INFO:
            return True
        allowed_messages = [
            "Site build completed in",
            "Total pages generated:",
            "Total documents generated:",
            "Total static files copied:",
            "Rendering",
            "Generating RSS feed",
            "Generating XML sitemap",
            "Generating robots.txt",
            "Skipping",
            "Published site to",
        ]
        return any(msg in record.getMessage() for msg in allowed_messages)


class Quire:
    """
    Site assembler: loads a source tree, resolves and renders every content
    unit, and derives the site-wide artifacts.

    ``build()`` works entirely in memory and returns a BuildResult;
    ``write()`` publishes that result to the output directory atomically.
    """

    def __init__(self, source_dir='.', output_dir=None, renderer=None, stylesheet_pipeline=None, **overrides):
        self.source_dir = os.path.abspath(source_dir)
        self.output_dir = os.path.abspath(output_dir) if output_dir else None
        self.overrides = {key: value for key, value in overrides.items() if value is not None}
        self.renderer = renderer
        self.stylesheet_pipeline = stylesheet_pipeline
        self.config: Optional[SiteConfig] = None
        self.data_tables = freeze({})
        self.pages_generated = 0
        self.documents_generated = 0
        self.static_files_copied = 0

        self.setup_logging(self.overrides.get('log_dir'))

    def setup_logging(self, log_dir=None):
        """Set up logging configuration."""
        self.logger = logging.getLogger('Quire')
        self.logger.setLevel(logging.DEBUG)

        if not any(getattr(handler, '_quire_console', False) for handler in self.logger.handlers):
            # Console handler with filter
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.addFilter(InfoFilter())
            console_handler.setFormatter(logging.Formatter('%(message)s'))
            console_handler._quire_console = True
            self.logger.addHandler(console_handler)

        if log_dir and not any(isinstance(handler, logging.FileHandler) for handler in self.logger.handlers):
            # File handler for all logs
            os.makedirs(log_dir, exist_ok=True)
            log_filename = datetime.now().strftime('quire_%Y-%m-%d_%H-%M-%S.log')
            file_handler = logging.FileHandler(os.path.join(log_dir, log_filename), encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
            self.logger.addHandler(file_handler)

    def _source_path(self, path):
        return path if os.path.isabs(path) else os.path.join(self.source_dir, path)

    def load(self):
        """Load the site configuration and data tables (build step 1)."""
        if not os.path.isdir(self.source_dir):
            raise BuildError(f"Source directory not found: {self.source_dir}")
        self.config = load_config(self.source_dir, self.overrides)
        if self.config.get('log_dir'):
            self.setup_logging(self._source_path(self.config['log_dir']))
        if self.output_dir is None:
            self.output_dir = os.path.abspath(self._source_path(self.config.get('output') or '_site'))
        self.data_tables = load_data_tables(self._source_path(self.config['data_dir']))
        return self.config

    def load_collections(self) -> Dict[str, Collection]:
        return {
            name: Collection.from_settings(name, definition)
            for name, definition in (self.config.get('collections') or {}).items()
        }

    def _is_excluded(self, relative: str) -> bool:
        patterns = self.config.get('exclude') or ()
        name = relative.rsplit('/', 1)[-1]
        return any(fnmatch(relative, pattern) or fnmatch(name, pattern) for pattern in patterns)

    def discover(self, collections: Dict[str, Collection]) -> Tuple[List[ContentUnit], Dict[str, str]]:
        """
        Walk the source tree and split it into content units and static files
        (build step 2). Units are returned sorted by source path.
        """
        roots = [collection.source for collection in collections.values() if collection.source]
        skipped_dirs = {
            os.path.abspath(self._source_path(self.config[key]))
            for key in ('layouts_dir', 'includes_dir', 'data_dir')
        }
        skipped_dirs.add(self.output_dir)
        config_files = set(QuireSettings.CONFIG_FILES)

        def allowed(relative):
            if any(relative == root or relative.startswith(root + '/') for root in roots):
                return True
            if any(root.startswith(relative + '/') for root in roots):
                return True
            return not any(part.startswith(('_', '.')) for part in relative.split('/'))

        units: List[ContentUnit] = []
        static_files: Dict[str, str] = {}
        for root, dirs, files in os.walk(self.source_dir):
            kept = []
            for directory in sorted(dirs):
                absolute = os.path.join(root, directory)
                relative = os.path.relpath(absolute, self.source_dir).replace(os.sep, '/')
                if directory.startswith('.') or os.path.abspath(absolute) in skipped_dirs:
                    continue
                if allowed(relative) and not self._is_excluded(relative):
                    kept.append(directory)
            dirs[:] = kept

            for filename in sorted(files):
                path = os.path.join(root, filename)
                relative = os.path.relpath(path, self.source_dir).replace(os.sep, '/')
                if filename.startswith('.') or relative in config_files:
                    continue
                if not allowed(relative) or self._is_excluded(relative):
                    continue
                unit = self.read_unit(path, relative)
                if unit is None:
                    static_files[relative] = path
                elif unit.metadata.get('published', True) is False:
                    self.logger.debug(f"Skipping unpublished {relative}")
                else:
                    units.append(unit)

        units.sort(key=lambda unit: unit.source_path)
        return units, static_files

    def read_unit(self, path: str, relative: str) -> Optional[ContentUnit]:
        """Parse a source file into a ContentUnit, or None if it is a static file."""
        ext = os.path.splitext(relative)[1].lower()
        if ext not in MARKDOWN_EXTENSIONS + HTML_EXTENSIONS:
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        except (IOError, OSError, UnicodeDecodeError) as e:
            raise BuildError(f"{relative}: cannot read content: {e}") from e

        # Plain HTML without front matter is copied as-is.
        if ext in HTML_EXTENSIONS and not has_front_matter(text):
            return None

        metadata, body = parse_front_matter(text, source=relative)
        unit = ContentUnit(source_path=relative, body=body, metadata=metadata)
        apply_filename_defaults(unit)
        return unit

    def layout_name_for(self, unit: ContentUnit, collections: Dict[str, Collection]) -> Optional[str]:
        if 'layout' in unit.metadata:
            name = unit.metadata['layout']
        elif unit.collection and collections[unit.collection].layout:
            name = collections[unit.collection].layout
        else:
            name = self.config.get('default_layout')
        if not name or str(name).lower() in NO_LAYOUT:
            return None
        return str(name)

    def collections_index(self, collections: Dict[str, Collection]):
        """Read-only listing of every collection's members, for index pages."""
        return freeze({
            name: [page_variables(unit) for unit in sort_units(collection.units, collection.sort_by)]
            for name, collection in sorted(collections.items())
        })

    def render_units(self, composer: TemplateComposer, units: List[ContentUnit], chains) -> None:
        """
        Render every unit (build step 5). Each render reads only its own unit
        and shared read-only state, so order and parallelism do not matter.
        """
        def render_one(unit):
            return composer.compose(unit, chains[unit.source_path])

        workers = self.config.get('workers')
        if len(units) >= PARALLEL_THRESHOLD and workers != 1:
            self.logger.info(f"Rendering {len(units)} units with {workers or os.cpu_count()} workers")
            with ThreadPoolExecutor(max_workers=workers or None) as executor:
                results = list(executor.map(render_one, units))
        else:
            self.logger.info(f"Rendering {len(units)} units in a single thread")
            results = [render_one(unit) for unit in units]

        for unit, (content, html) in zip(units, results):
            unit.content = content
            unit.html = html

    def build(self) -> BuildResult:
        """Main build process. Raises BuildError on the first failure."""
        start_time = time.time()
        self.logger.info("Starting site build...")

        # 1. configuration, data tables, templates
        self.load()
        layouts = load_layouts(self._source_path(self.config['layouts_dir']))
        fragments = load_fragments(self._source_path(self.config['includes_dir']))
        renderer = self.renderer or get_renderer(self.config.get('markdown'))

        # 2. content units
        collections = self.load_collections()
        units, static_files = self.discover(collections)

        # 3. collections and output paths, checked across the whole site
        registry = OutputRegistry()
        resolver = CollectionResolver(collections, self.config.get('permalink'))
        for unit, (collection_name, path) in resolver.assign(units, registry).items():
            unit.collection = collection_name
            unit.output_path = path
            if collection_name:
                collections[collection_name].units.append(unit)

        # 4. layout chains; every layout is checked, used or not
        layout_resolver = LayoutResolver(layouts)
        layout_resolver.validate()
        chains = {}
        for unit in units:
            name = self.layout_name_for(unit, collections)
            chains[unit.source_path] = layout_resolver.resolve_chain(name, unit.source_path) if name else []

        # 5. render
        composer = TemplateComposer(
            layouts, fragments, self.config, self.data_tables, renderer,
            collections_index=self.collections_index(collections),
            navigation_table=self.config.get('navigation_table'),
        )
        self.render_units(composer, units, chains)

        # 6. cross-unit artifacts, once every output path is known
        result = BuildResult(units=units)
        result.outputs = {unit.output_path: unit.html for unit in sorted(units, key=lambda u: u.output_path)}
        self.build_artifacts(result, units, collections, registry)
        self.build_assets(result, static_files, registry)

        self.pages_generated = len(result.outputs)
        self.documents_generated = len(result.documents)
        self.static_files_copied = len(result.static_files)
        self.logger.info(f"Site build completed in {time.time() - start_time:.6f} seconds.")
        self.logger.info(f"Total pages generated: {self.pages_generated}")
        self.logger.info(f"Total documents generated: {self.documents_generated}")
        self.logger.info(f"Total static files copied: {self.static_files_copied}")
        return result

    def build_artifacts(self, result: BuildResult, units: List[ContentUnit],
                        collections: Dict[str, Collection], registry: OutputRegistry) -> None:
        site_url = self.config.url
        tree = self.data_tables.get(self.config.get('navigation_table') or '')

        result.artifacts['navigation'] = {
            unit.output_path: navigation_state(tree, unit.output_path) for unit in units
        }
        result.artifacts['sitemap'] = sitemap_paths(units)

        redirects = {}
        for old_path, new_path, source in collect_redirects(units):
            registry.claim(old_path, source)
            redirects[old_path] = new_path
            target = f"{site_url}{new_path}" if site_url else new_path
            result.documents[old_path] = redirect_page(target)
        result.artifacts['redirects'] = redirects

        feed_settings = self.config.get('feed')
        items = []
        if feed_settings and feed_settings.get('collection') in collections:
            items = feed_items(units, feed_settings['collection'], feed_settings.get('limit', 20))
        result.artifacts['feed'] = items

        if self.config.get('sitemap'):
            if site_url:
                registry.claim('/sitemap.xml', '<sitemap>')
                result.documents['/sitemap.xml'] = sitemap_xml(units, site_url)
                self.logger.info("Generating XML sitemap")
            else:
                self.logger.info("Skipping XML sitemap (no url).")

        if items:
            if site_url:
                feed_path = normalize_output_path(feed_settings.get('path') or '/feed.xml')
                registry.claim(feed_path, '<feed>')
                result.documents[feed_path] = rss_feed(
                    items, site_url, self.config.title or site_url, self.config.get('description'))
                self.logger.info("Generating RSS feed")
            else:
                self.logger.info("Skipping RSS feed (no url).")

        robots = robots_txt(self.config.get('robots', 'public'), site_url if self.config.get('sitemap') else None)
        if robots is not None:
            registry.claim('/robots.txt', '<robots>')
            result.documents['/robots.txt'] = robots
            self.logger.info("Generating robots.txt")

    def build_assets(self, result: BuildResult, static_files: Dict[str, str], registry: OutputRegistry) -> None:
        """Compile stylesheet bundles and register static files."""
        minify = bool(self.config.get('minify'))
        pipeline = self.stylesheet_pipeline or StylesheetPipeline(minify=minify)

        for target, sources in sorted((self.config.get('stylesheets') or {}).items()):
            path = normalize_output_path(target)
            if isinstance(sources, str):
                sources = [sources]
            registry.claim(path, f"<stylesheet {target}>")
            result.documents[path] = pipeline.compile([self._source_path(s) for s in sources], path)

        for relative in sorted(static_files):
            path = '/' + relative
            registry.claim(path, relative)
            result.static_files[path] = static_files[relative]

        if minify:
            for relative in sorted(static_files):
                minified = minified_name('/' + relative)
                if minified is None or minified in registry:
                    continue
                registry.claim(minified, relative)
                result.documents[minified] = minify_file(static_files[relative])
                self.logger.debug(f"Minified {relative}")

    def write(self, result: BuildResult, output_dir=None) -> str:
        """
        Publish a build result. Files are written to a staging directory next
        to the output and swapped in only once everything is written, so a
        failure leaves the previous output untouched.
        """
        output_dir = os.path.abspath(output_dir or self.output_dir or os.path.join(self.source_dir, '_site'))
        parent = os.path.dirname(output_dir)
        os.makedirs(parent, exist_ok=True)
        staging = tempfile.mkdtemp(prefix='.quire-', dir=parent)
        try:
            for path, text in list(result.outputs.items()) + list(result.documents.items()):
                destination = os.path.join(staging, output_file(path))
                os.makedirs(os.path.dirname(destination), exist_ok=True)
                with open(destination, 'w', encoding='utf-8', newline='') as f:
                    f.write(text)
            for path, source in result.static_files.items():
                destination = os.path.join(staging, output_file(path))
                os.makedirs(os.path.dirname(destination), exist_ok=True)
                shutil.copy2(source, destination)
            self._carry_over_kept_files(output_dir, staging)
            self._swap(staging, output_dir)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        self.logger.info(f"Published site to {output_dir}")
        return output_dir

    def _carry_over_kept_files(self, output_dir: str, staging: str) -> None:
        """Copy keep_files entries (e.g. .git, CNAME) from the previous output."""
        keep_files = (self.config.get('keep_files') if self.config else None) or ()
        preserved = []
        for name in keep_files:
            source = os.path.join(output_dir, name)
            destination = os.path.join(staging, name)
            if not os.path.lexists(source) or os.path.lexists(destination):
                continue
            if os.path.isdir(source):
                shutil.copytree(source, destination, symlinks=True)
            else:
                shutil.copy2(source, destination)
            preserved.append(name)
        if preserved:
            self.logger.info(f"Preserved non-Quire files: {', '.join(preserved)}")

    def _swap(self, staging: str, output_dir: str) -> None:
        if not os.path.exists(output_dir):
            os.replace(staging, output_dir)
            return
        backup_root = tempfile.mkdtemp(prefix='.quire-old-', dir=os.path.dirname(output_dir))
        backup = os.path.join(backup_root, 'previous')
        os.replace(output_dir, backup)
        try:
            os.replace(staging, output_dir)
        except OSError:
            os.replace(backup, output_dir)
            raise
        finally:
            shutil.rmtree(backup_root, ignore_errors=True)


def build(source_root='.', output_root=None, **overrides) -> BuildResult:
    """Build the site under source_root and publish it to output_root."""
    site = Quire(source_root, output_root, **overrides)
    result = site.build()
    site.write(result)
    return result
