"""
Quire - A template-driven static site generator.

Quire composes content units (Markdown or HTML with YAML front matter) through
nested Jinja2 layouts and shared fragments, using a site-wide configuration
and structured data tables, into a static site with a sitemap, feed,
redirects and compiled stylesheets.
"""

__version__ = "1.0.0"

from .core import Quire, build
from .errors import BuildError

__all__ = ['Quire', 'build', 'BuildError']
