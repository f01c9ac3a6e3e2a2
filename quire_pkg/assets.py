"""
Asset pipeline: stylesheet compilation and CSS/JS minification.

The assembler only relies on ``compile(sources) -> stylesheet``; other
pipelines can be passed to Quire as long as they expose that method.
"""

import logging
import os
from typing import Iterable, Optional

import csscompressor
import rjsmin

from .errors import AssetPipelineError


class StylesheetPipeline:
    """Concatenates stylesheet sources and optionally compresses the result."""

    def __init__(self, minify: bool = False):
        self.minify = minify
        self.logger = logging.getLogger('Quire.Assets')

    def compile(self, sources: Iterable[str], target: Optional[str] = None) -> str:
        """
        Compile stylesheet source files into one stylesheet.

        Raises:
            AssetPipelineError: if a source file is missing or unreadable.
        """
        parts = []
        for source in sources:
            try:
                with open(source, 'r', encoding='utf-8') as f:
                    parts.append(f.read())
            except (IOError, OSError, UnicodeDecodeError) as e:
                raise AssetPipelineError(target or source, f"cannot read stylesheet {source}: {e}") from e
        stylesheet = '\n'.join(part.rstrip('\n') for part in parts) + '\n'
        if self.minify:
            stylesheet = minify_css(stylesheet)
        self.logger.debug(f"Compiled {len(parts)} stylesheet(s) into {target or 'stylesheet'}")
        return stylesheet


def minify_css(css_content: str) -> str:
    return csscompressor.compress(css_content)


def minify_js(js_content: str) -> str:
    return rjsmin.jsmin(js_content)


MINIFIERS = {
    '.css': minify_css,
    '.js': minify_js,
}


def minified_name(path: str) -> Optional[str]:
    """``/css/site.css`` -> ``/css/site.min.css``; None if not minifiable or already minified."""
    base, ext = os.path.splitext(path)
    if ext.lower() not in MINIFIERS or base.endswith('.min'):
        return None
    return f"{base}.min{ext}"


def minify_file(source: str) -> str:
    """Read a CSS or JS file and return its minified text."""
    ext = os.path.splitext(source)[1].lower()
    try:
        with open(source, 'r', encoding='utf-8') as f:
            content = f.read()
    except (IOError, OSError, UnicodeDecodeError) as e:
        raise AssetPipelineError(source, f"cannot minify: {e}") from e
    return MINIFIERS[ext](content)
