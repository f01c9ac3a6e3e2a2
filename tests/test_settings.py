"""Tests for configuration loading and data tables."""

import pytest
import os
import json
from pathlib import Path

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from quire_pkg.errors import ConfigParseError
from quire_pkg.settings import QuireSettings, SiteConfig, freeze, load_config, load_data_tables


class TestQuireSettings:
    """Test cases for QuireSettings."""

    def test_defaults_without_config_file(self, temp_dir):
        """Test defaults are used when no config file exists."""
        loader = QuireSettings(temp_dir)
        settings = loader.load_settings()

        assert loader.config_file_path is None
        assert settings['output'] == '_site'
        assert settings['permalink'] == '/:path/'
        assert settings['layouts_dir'] == '_layouts'
        assert settings['keep_files'] == ['.git', 'CNAME']

    def test_yaml_config_overrides_defaults(self, temp_dir, write_file):
        """Test values from quire.yml win over defaults."""
        write_file(temp_dir, 'quire.yml', "title: My Site\npermalink: /:slug/\n")

        settings = QuireSettings(temp_dir).load_settings()

        assert settings['title'] == 'My Site'
        assert settings['permalink'] == '/:slug/'
        assert settings['output'] == '_site'

    def test_json_config(self, temp_dir, write_file):
        """Test quire.json is read when no YAML file exists."""
        write_file(temp_dir, 'quire.json', json.dumps({'title': 'JSON Site', 'minify': True}))

        settings = QuireSettings(temp_dir).load_settings()

        assert settings['title'] == 'JSON Site'
        assert settings['minify'] is True

    def test_yml_preferred_over_json(self, temp_dir, write_file):
        """Test the preference order of config file names."""
        write_file(temp_dir, 'quire.yml', "title: From YAML\n")
        write_file(temp_dir, 'quire.json', json.dumps({'title': 'From JSON'}))

        loader = QuireSettings(temp_dir)

        assert loader.load_settings()['title'] == 'From YAML'
        assert loader.config_file_path.endswith('quire.yml')

    def test_invalid_yaml_raises(self, temp_dir, write_file):
        """Test a broken config file fails loudly instead of falling back to defaults."""
        write_file(temp_dir, 'quire.yml', "title: [broken\n")

        with pytest.raises(ConfigParseError, match="invalid YAML") as exc_info:
            QuireSettings(temp_dir).load_settings()

        assert exc_info.value.source.endswith('quire.yml')

    def test_invalid_json_raises(self, temp_dir, write_file):
        write_file(temp_dir, 'quire.json', "{not json")

        with pytest.raises(ConfigParseError, match="invalid JSON"):
            QuireSettings(temp_dir).load_settings()

    def test_non_mapping_config_raises(self, temp_dir, write_file):
        """Test a config file holding a list is rejected."""
        write_file(temp_dir, 'quire.yml', "- one\n- two\n")

        with pytest.raises(ConfigParseError, match="must be a mapping"):
            QuireSettings(temp_dir).load_settings()

    def test_duplicate_config_keys_raise(self, temp_dir, write_file):
        write_file(temp_dir, 'quire.yml', "title: One\ntitle: Two\n")

        with pytest.raises(ConfigParseError):
            QuireSettings(temp_dir).load_settings()

    def test_duplicate_json_config_keys_raise(self, temp_dir, write_file):
        """Test a key repeated in quire.json is rejected like a repeated YAML key."""
        write_file(temp_dir, 'quire.json', '{"title": "A", "title": "B"}')

        with pytest.raises(ConfigParseError, match="duplicate key 'title'") as exc_info:
            QuireSettings(temp_dir).load_settings()

        assert exc_info.value.source.endswith('quire.json')

    def test_nested_duplicate_json_keys_raise(self, temp_dir, write_file):
        write_file(temp_dir, 'quire.json', '{"feed": {"limit": 5, "limit": 10}}')

        with pytest.raises(ConfigParseError, match="duplicate key 'limit'"):
            QuireSettings(temp_dir).load_settings()

    def test_undecodable_config_raises(self, temp_dir):
        """Test bytes that are not UTF-8 are reported as a parse error."""
        (Path(temp_dir) / 'quire.yml').write_bytes(b"title: \xff\xfe bad\n")

        with pytest.raises(ConfigParseError, match="not valid UTF-8") as exc_info:
            load_config(temp_dir)

        assert exc_info.value.source.endswith('quire.yml')

    def test_empty_config_file(self, temp_dir, write_file):
        """Test an empty file is treated as no overrides."""
        write_file(temp_dir, 'quire.yml', "")

        assert QuireSettings(temp_dir).load_settings()['output'] == '_site'

    def test_merge_with_args(self, temp_dir, write_file):
        """Test command-line arguments take precedence over the config file."""
        write_file(temp_dir, 'quire.yml', "title: File Title\nurl: https://file.example\n")
        loader = QuireSettings(temp_dir)
        loader.load_settings()

        merged = loader.merge_with_args({'title': 'CLI Title', 'url': None})

        assert merged['title'] == 'CLI Title'
        assert merged['url'] == 'https://file.example'

    @pytest.mark.parametrize('file_format', ['yml', 'yaml', 'json'])
    def test_create_sample_config(self, temp_dir, file_format):
        """Test the sample config is written and loads back cleanly."""
        path = QuireSettings(temp_dir).create_sample_config(file_format)

        assert os.path.basename(path) == f'quire.{file_format}'
        config = load_config(temp_dir)
        assert config['title'] == 'My Static Site'
        assert config['collections']['posts']['permalink'] == '/blog/:year/:month/:slug/'

    def test_create_sample_config_unknown_format(self, temp_dir):
        with pytest.raises(ValueError, match="Unsupported"):
            QuireSettings(temp_dir).create_sample_config('toml')


class TestSiteConfig:
    """Test cases for the read-only configuration snapshot."""

    def test_load_config_applies_overrides(self, temp_dir, write_file):
        write_file(temp_dir, 'quire.yml', "title: File\n")

        config = load_config(temp_dir, {'title': 'Override'})

        assert isinstance(config, SiteConfig)
        assert config['title'] == 'Override'
        assert config.title == 'Override'

    def test_url_trailing_slash_removed(self):
        assert SiteConfig({'url': 'https://example.com/'}).url == 'https://example.com'
        assert SiteConfig({}).url == ''

    def test_cannot_be_mutated(self):
        """Test neither the snapshot nor its nested values can change."""
        config = SiteConfig({'title': 'Site', 'feed': {'limit': 5}, 'exclude': ['drafts']})

        with pytest.raises(TypeError):
            config['title'] = 'Other'
        with pytest.raises(AttributeError):
            config.title = 'Other'
        with pytest.raises(TypeError):
            config['feed']['limit'] = 10
        assert config['exclude'] == ('drafts',)

    def test_snapshot_is_independent_of_source_dict(self):
        settings = {'title': 'Before'}
        config = SiteConfig(settings)
        settings['title'] = 'After'

        assert config['title'] == 'Before'

    def test_freeze_nested(self):
        frozen = freeze({'a': [{'b': 1}], 'c': {'x', 'y'}})

        assert frozen['a'][0]['b'] == 1
        assert isinstance(frozen['a'], tuple)
        assert frozen['c'] == frozenset({'x', 'y'})


class TestDataTables:
    """Test cases for loading the data directory."""

    def test_missing_directory(self, temp_dir):
        assert dict(load_data_tables(os.path.join(temp_dir, '_data'))) == {}

    def test_tables_keyed_by_file_name(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'navigation.yml', "- label: Home\n  target: /\n")
        write_file(data_dir, 'authors.json', json.dumps({'ada': {'name': 'Ada'}}))

        tables = load_data_tables(str(data_dir))

        assert sorted(tables) == ['authors', 'navigation']
        assert tables['navigation'][0]['label'] == 'Home'
        assert tables['authors']['ada']['name'] == 'Ada'

    def test_nested_directories_become_nested_tables(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'menus/main.yml', "- Home\n- About\n")
        write_file(data_dir, 'menus/footer.yaml', "- Contact\n")

        tables = load_data_tables(str(data_dir))

        assert tables['menus']['main'] == ('Home', 'About')
        assert tables['menus']['footer'] == ('Contact',)

    def test_non_data_files_ignored(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'notes.txt', "ignored")
        write_file(data_dir, '.hidden.yml', "a: 1\n")

        assert dict(load_data_tables(str(data_dir))) == {}

    def test_duplicate_table_names(self, temp_dir, write_file):
        """Test two files mapping to the same table name are rejected."""
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'site.yml', "a: 1\n")
        write_file(data_dir, 'site.json', '{"a": 2}')

        with pytest.raises(ConfigParseError, match="defined twice"):
            load_data_tables(str(data_dir))

    def test_file_and_directory_with_same_name(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'menus.yml', "- Home\n")
        write_file(data_dir, 'menus/main.yml', "- About\n")

        with pytest.raises(ConfigParseError, match="defined twice"):
            load_data_tables(str(data_dir))

    def test_empty_file_and_directory_with_same_name(self, temp_dir, write_file):
        """Test an empty table still claims its name."""
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'menus.yml', "")
        write_file(data_dir, 'menus/main.yml', "- a\n")

        with pytest.raises(ConfigParseError, match="defined twice"):
            load_data_tables(str(data_dir))

    def test_duplicate_json_data_keys(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'site.json', '{"k": 1, "k": 2}')

        with pytest.raises(ConfigParseError, match="duplicate key 'k'") as exc_info:
            load_data_tables(str(data_dir))

        assert exc_info.value.source.endswith('site.json')

    def test_same_json_key_in_sibling_objects(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'team.json', '[{"name": "Ada"}, {"name": "Grace"}]')

        tables = load_data_tables(str(data_dir))

        assert [member['name'] for member in tables['team']] == ['Ada', 'Grace']

    def test_undecodable_data_file(self, temp_dir):
        data_dir = Path(temp_dir) / '_data'
        data_dir.mkdir()
        (data_dir / 'site.yml').write_bytes(b"owner: \xff\n")

        with pytest.raises(ConfigParseError, match="not valid UTF-8"):
            load_data_tables(str(data_dir))

    def test_invalid_data_file(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'broken.yml', "a: [1\n")

        with pytest.raises(ConfigParseError) as exc_info:
            load_data_tables(str(data_dir))

        assert exc_info.value.source.endswith('broken.yml')

    def test_tables_are_read_only(self, temp_dir, write_file):
        data_dir = Path(temp_dir) / '_data'
        write_file(data_dir, 'site.yml', "owner: Ada\n")

        tables = load_data_tables(str(data_dir))

        with pytest.raises(TypeError):
            tables['site']['owner'] = 'Grace'
