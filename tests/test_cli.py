"""Tests for the quire command-line interface."""

import pytest
import os
from pathlib import Path

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from quire_pkg import __version__
from quire_pkg.cli import build_parser, main


class TestCLI:
    """Test cases for the CLI entry point."""

    def test_parser_defaults(self):
        args = build_parser().parse_args([])

        assert args.source == '.'
        assert args.output is None
        assert args.minify is None
        assert args.init is None

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['--version'])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_init_creates_sample_config(self, temp_dir, capsys):
        main(['--init', 'yml', '--source', temp_dir])

        assert (Path(temp_dir) / 'quire.yml').exists()
        assert "Created sample configuration file" in capsys.readouterr().out

    def test_build(self, site_dir, output_dir):
        main(['--source', site_dir, '--output', output_dir])

        assert (Path(output_dir) / 'index.html').exists()
        assert (Path(output_dir) / 'feed.xml').exists()

    def test_url_override(self, site_dir, output_dir):
        main(['--source', site_dir, '--output', output_dir, '--url', 'https://other.example'])

        sitemap = (Path(output_dir) / 'sitemap.xml').read_text()
        assert '<loc>https://other.example/about/</loc>' in sitemap

    def test_build_error_exits_nonzero(self, site_dir, output_dir, write_file, capsys):
        """Test a failed build prints the error and leaves no output behind."""
        write_file(site_dir, 'odd.md', "---\nlayout: missing\n---\nx\n")

        with pytest.raises(SystemExit) as exc_info:
            main(['--source', site_dir, '--output', output_dir])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Error: Unknown layout 'missing'" in err
        assert 'odd.md' in err
        assert not os.path.exists(output_dir)

    def test_undecodable_input_is_reported(self, site_dir, output_dir, capsys):
        """Test a layout that is not UTF-8 ends in an error message, not a traceback."""
        (Path(site_dir) / '_layouts' / 'default.html').write_bytes(b"\xff{{ content }}")

        with pytest.raises(SystemExit) as exc_info:
            main(['--source', site_dir, '--output', output_dir])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert err.startswith('Error: ')
        assert 'default.html' in err

    def test_unknown_markdown_choice(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['--markdown', 'textile'])

        assert exc_info.value.code == 2
