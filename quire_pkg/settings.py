#!/usr/bin/env python3
"""
Settings loader for Quire static site generator.
Supports configuration from quire.yml, quire.yaml, or quire.json files,
plus structured data tables under the data directory.
"""

import os
import json
import logging
import yaml
from collections.abc import Mapping
from types import MappingProxyType
from typing import Dict, Any, Optional

from .errors import ConfigParseError
from .frontmatter import load_yaml

DATA_EXTENSIONS = ('.yml', '.yaml', '.json')


def freeze(value):
    """Return a read-only deep copy: dicts become mapping proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, set):
        return frozenset(freeze(item) for item in value)
    return value


class SiteConfig(Mapping):
    """
    Immutable snapshot of the site configuration.

    Built once at the start of a build and passed by reference into every
    render. Keys are readable as items or, from templates, as attributes.
    """

    __slots__ = ('_data',)

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        object.__setattr__(self, '_data', freeze(settings or {}))

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def __setattr__(self, name, value):
        raise AttributeError("SiteConfig is read-only")

    def __repr__(self):
        return f"SiteConfig({dict(self._data)!r})"

    @property
    def url(self) -> str:
        return (self._data.get('url') or '').rstrip('/')

    @property
    def title(self) -> str:
        return self._data.get('title') or ''


class QuireSettings:
    """Load and manage Quire configuration settings."""

    # Default configuration
    DEFAULT_SETTINGS = {
        'url': None,
        'title': None,
        'tagline': None,
        'description': None,
        'output': '_site',
        'layouts_dir': '_layouts',
        'includes_dir': '_includes',
        'data_dir': '_data',
        'permalink': '/:path/',
        'default_layout': None,
        'collections': {},
        'feed': {'collection': 'posts', 'path': '/feed.xml', 'limit': 20},
        'sitemap': True,
        'robots': 'public',
        'markdown': 'mistune',
        'minify': False,
        'stylesheets': {},
        'exclude': [],
        'keep_files': ['.git', 'CNAME'],
        'navigation_table': 'navigation',
        'workers': None,
        'log_dir': None,
    }

    # Config file names to look for (in order of preference)
    CONFIG_FILES = ['quire.yml', 'quire.yaml', 'quire.json']

    def __init__(self, config_dir: str = None):
        """
        Initialize settings loader.

        Args:
            config_dir: Directory to look for config files. Defaults to current directory.
        """
        self.config_dir = config_dir or os.getcwd()
        self.settings = dict(self.DEFAULT_SETTINGS)
        self.config_file_path = None
        self.logger = logging.getLogger('Quire.Settings')

    def load_settings(self) -> Dict[str, Any]:
        """
        Load settings from configuration file if it exists.

        Returns:
            Dictionary of configuration settings

        Raises:
            ConfigParseError: if the file exists but cannot be parsed
        """
        config_file = self._find_config_file()

        if config_file:
            self.config_file_path = config_file
            loaded_settings = self._load_config_file(config_file)
            if loaded_settings:
                # Merge with defaults, giving preference to loaded settings
                self.settings.update(loaded_settings)
            self.logger.info(f"Loaded configuration from: {os.path.relpath(config_file)}")

        return dict(self.settings)

    def _find_config_file(self) -> Optional[str]:
        """
        Find the first available configuration file.

        Returns:
            Path to config file or None if not found
        """
        for filename in self.CONFIG_FILES:
            config_path = os.path.join(self.config_dir, filename)
            if os.path.exists(config_path):
                return config_path
        return None

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Dictionary of configuration settings
        """
        loaded = read_structured_file(config_path)
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigParseError(
                f"configuration must be a mapping, got {type(loaded).__name__}", config_path)
        return loaded

    def create_sample_config(self, file_format: str = 'yml') -> str:
        """
        Create a sample configuration file.

        Args:
            file_format: Format for config file ('yml', 'yaml', or 'json')

        Returns:
            Path to created sample config file
        """
        sample_config = {
            'url': 'https://example.com',
            'title': 'My Static Site',
            'tagline': 'Built with Quire',
            'output': '_site',
            'permalink': '/:path/',
            'default_layout': 'default',
            'collections': {
                'posts': {
                    'source': '_posts',
                    'permalink': '/blog/:year/:month/:slug/',
                    'layout': 'post',
                    'sort_by': 'date',
                },
            },
            'feed': {'collection': 'posts', 'path': '/feed.xml', 'limit': 20},
            'robots': 'public',
            'markdown': 'mistune',
            'minify': False,
            'keep_files': ['.git', 'CNAME'],
        }

        filename = f'quire.{file_format}'
        config_path = os.path.join(self.config_dir, filename)

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                if file_format in ['yml', 'yaml']:
                    # Custom YAML output with comments
                    f.write("# Quire Configuration File\n\n")
                    f.write("# Site information\n")
                    f.write("url: https://example.com\n")
                    f.write("title: My Static Site\n")
                    f.write("tagline: Built with Quire\n\n")
                    f.write("# Build settings\n")
                    f.write("output: _site\n")
                    f.write("permalink: /:path/  # :path, :slug, :title, :year, :month, :day\n")
                    f.write("default_layout: default\n\n")
                    f.write("# Collections\n")
                    f.write("collections:\n")
                    f.write("  posts:\n")
                    f.write("    source: _posts\n")
                    f.write("    permalink: /blog/:year/:month/:slug/\n")
                    f.write("    layout: post\n")
                    f.write("    sort_by: date  # date, title, order\n\n")
                    f.write("# Derived artifacts\n")
                    f.write("feed:\n")
                    f.write("  collection: posts\n")
                    f.write("  path: /feed.xml\n")
                    f.write("  limit: 20\n")
                    f.write("robots: public  # public, private or none\n\n")
                    f.write("# Rendering\n")
                    f.write("markdown: mistune  # mistune or python-markdown\n")
                    f.write("minify: false\n")
                    f.write("keep_files:\n")
                    f.write("  - .git\n")
                    f.write("  - CNAME\n")
                elif file_format == 'json':
                    json.dump(sample_config, f, indent=2)
                else:
                    raise ValueError(f"Unsupported config file format: {file_format}")
        except PermissionError:
            raise PermissionError(f"Permission denied creating configuration file: {config_path}")
        except (IOError, OSError) as e:
            raise IOError(f"Error writing configuration file {config_path}: {e}")

        return config_path

    def merge_with_args(self, args_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge configuration settings with command-line arguments.
        Command-line arguments take precedence over config file settings.

        Args:
            args_dict: Dictionary of command-line arguments

        Returns:
            Merged configuration dictionary
        """
        merged = dict(self.settings)

        # Override with non-None command line arguments
        for key, value in args_dict.items():
            if value is not None:
                merged[key] = value

        return merged


def unique_pairs(pairs, path: str) -> Dict[str, Any]:
    """JSON object hook that rejects a key repeated within one object."""
    mapping: Dict[str, Any] = {}
    for key, value in pairs:
        if key in mapping:
            raise ConfigParseError(f"found duplicate key {key!r}", path)
        mapping[key] = value
    return mapping


def read_structured_file(path: str):
    """Parse a YAML or JSON file, raising ConfigParseError on any failure."""
    file_ext = os.path.splitext(path)[1].lower()
    try:
        with open(path, 'r', encoding='utf-8') as f:
            if file_ext in ['.yml', '.yaml']:
                return load_yaml(f)
            elif file_ext == '.json':
                return json.load(f, object_pairs_hook=lambda pairs: unique_pairs(pairs, path))
            else:
                raise ConfigParseError(f"unsupported file format: {file_ext}", path)
    except yaml.YAMLError as e:
        raise ConfigParseError(f"invalid YAML: {e}", path) from e
    except json.JSONDecodeError as e:
        raise ConfigParseError(f"invalid JSON: {e}", path) from e
    except UnicodeDecodeError as e:
        raise ConfigParseError(f"is not valid UTF-8: {e}", path) from e
    except (IOError, OSError) as e:
        raise ConfigParseError(f"could not be read: {e}", path) from e


def load_config(config_source: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> SiteConfig:
    """
    Load the site configuration found in config_source (a directory) and freeze it.

    Args:
        config_source: Directory holding quire.yml / quire.yaml / quire.json
        overrides: Values that take precedence over the file (e.g. from the CLI)
    """
    loader = QuireSettings(config_source)
    loader.load_settings()
    return SiteConfig(loader.merge_with_args(overrides or {}))


def load_data_tables(data_sources: Optional[str]) -> Mapping:
    """
    Load every data file under the data directory into a read-only mapping.

    ``_data/navigation.yml`` becomes ``navigation``; ``_data/menus/main.yml``
    becomes ``menus`` -> ``main``. A missing directory yields no tables.
    """
    tables: Dict[str, Any] = {}
    directories = {id(tables)}
    if not data_sources or not os.path.isdir(data_sources):
        return freeze(tables)

    for root, dirs, files in os.walk(data_sources):
        dirs[:] = sorted(d for d in dirs if not d.startswith('.'))
        rel_dir = os.path.relpath(root, data_sources)
        parts = [] if rel_dir == '.' else rel_dir.split(os.sep)
        for filename in sorted(files):
            stem, ext = os.path.splitext(filename)
            if ext.lower() not in DATA_EXTENSIONS or filename.startswith('.'):
                continue
            path = os.path.join(root, filename)
            table = read_structured_file(path)

            node = tables
            for part in parts:
                if part not in node:
                    child = node[part] = {}
                    directories.add(id(child))
                elif id(node[part]) not in directories:
                    raise ConfigParseError(f"data table name {part!r} is defined twice", path)
                else:
                    child = node[part]
                node = child
            if stem in node:
                raise ConfigParseError(f"data table name {stem!r} is defined twice", path)
            node[stem] = table

    return freeze(tables)
