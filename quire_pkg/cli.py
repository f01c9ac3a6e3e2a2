#!/usr/bin/env python3
"""
Command-line interface for Quire - template-driven static site generator.
"""

import os
import sys
import argparse
import logging
from typing import List, Optional

from . import __version__
from .core import Quire
from .errors import BuildError
from .renderers import RENDERERS
from .settings import QuireSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Quire - Template-Driven Static Site Generator')
    parser.add_argument('--source', type=str, default='.',
                        help='Source directory holding content, layouts and quire.yml')
    parser.add_argument('--output', type=str,
                        help='Output directory for the generated site')
    parser.add_argument('--url', type=str,
                        help='Base URL used for the sitemap, feed and absolute links')
    parser.add_argument('--title', type=str, help='Site title')
    parser.add_argument('--markdown', type=str, choices=sorted(RENDERERS),
                        help='Markdown renderer for content bodies')
    parser.add_argument('--minify', action='store_true', default=None,
                        help='Minify CSS and JS assets')
    parser.add_argument('--workers', type=int,
                        help='Number of render threads (1 disables parallel rendering)')
    parser.add_argument('--log-dir', type=str,
                        help='Directory for detailed build logs')
    parser.add_argument('--verbose', action='store_true',
                        help='Show debug output on the console')
    parser.add_argument('--init', type=str, choices=['yml', 'yaml', 'json'],
                        help='Create a sample configuration file in the source directory')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    # Handle init command
    if args.init:
        settings_loader = QuireSettings(args.source)
        config_path = settings_loader.create_sample_config(args.init)
        print(f"Created sample configuration file: {config_path}")
        print("Add layouts to _layouts/, fragments to _includes/ and content to the source directory,")
        print("then run 'quire' to build your site.")
        return

    output_dir = os.path.expanduser(args.output) if args.output else None

    try:
        generator = Quire(
            source_dir=args.source,
            output_dir=output_dir,
            url=args.url,
            title=args.title,
            markdown=args.markdown,
            minify=args.minify,
            workers=args.workers,
            log_dir=args.log_dir,
        )
        if args.verbose:
            for handler in generator.logger.handlers:
                if getattr(handler, '_quire_console', False):
                    handler.setLevel(logging.DEBUG)
                    handler.filters.clear()

        result = generator.build()
        generator.write(result)
    except (BuildError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
