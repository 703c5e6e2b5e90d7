"""
Tests for RuleMock Configuration

Tests MockConfig defaults, dictionary and YAML loading, and overrides.
"""

import json
import logging

import pytest

from rulemock.mock.config import MockConfig


class TestMockConfig:
    """Test MockConfig dataclass."""

    def test_default_config(self):
        """Test default configuration values."""
        config = MockConfig()

        assert config.host == '127.0.0.1'
        assert config.port == 3535
        assert config.proxy_prefix == '/api'
        assert config.proxy_target is None
        assert config.change_origin is True
        assert config.admin_enabled is True
        assert config.fallback_status == 404
        assert json.loads(config.fallback_body)['error']

    def test_from_dict(self):
        """Test construction from a mapping."""
        config = MockConfig.from_dict({'port': 8080, 'proxy_target': 'https://staging.example.com'})

        assert config.port == 8080
        assert config.proxy_target == 'https://staging.example.com'

    def test_from_dict_unknown_keys(self):
        """Test unknown keys are rejected."""
        with pytest.raises(ValueError, match='Unknown config keys: bogus'):
            MockConfig.from_dict({'bogus': 1})

    def test_fallback_body_mapping_serialized(self):
        """Test mapping fallback bodies are stored as JSON."""
        config = MockConfig.from_dict({'fallback_body': {'error': 'nope'}})

        assert json.loads(config.fallback_body) == {'error': 'nope'}

    def test_with_overrides(self):
        """Test overrides apply and None values are ignored."""
        base = MockConfig(port=4000, proxy_prefix='/v1')

        config = base.with_overrides(port=5000, proxy_prefix=None, verbose_mode=True)

        assert config.port == 5000
        assert config.proxy_prefix == '/v1'
        assert config.verbose_mode is True
        assert base.port == 4000


class TestYamlLoading:
    """Test MockConfig.from_yaml()."""

    def test_load_yaml(self, tmp_path):
        """Test loading a YAML file."""
        config_file = tmp_path / 'rulemock.yaml'
        config_file.write_text(
            'port: 4545\n'
            'proxy_target: https://staging.example.com\n'
            'proxy_prefix: /backend\n'
            'fallback_body:\n'
            '  error: not mocked\n'
        )

        config = MockConfig.from_yaml(str(config_file))

        assert config.port == 4545
        assert config.proxy_target == 'https://staging.example.com'
        assert config.proxy_prefix == '/backend'
        assert json.loads(config.fallback_body) == {'error': 'not mocked'}

    def test_empty_yaml_uses_defaults(self, tmp_path):
        """Test an empty file yields defaults."""
        config_file = tmp_path / 'empty.yaml'
        config_file.write_text('')

        assert MockConfig.from_yaml(str(config_file)) == MockConfig()

    def test_missing_file(self, tmp_path):
        """Test missing files raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            MockConfig.from_yaml(str(tmp_path / 'missing.yaml'))

    def test_non_mapping(self, tmp_path):
        """Test non-mapping YAML is rejected."""
        config_file = tmp_path / 'list.yaml'
        config_file.write_text('- port\n- 3535\n')

        with pytest.raises(ValueError, match='must contain a mapping'):
            MockConfig.from_yaml(str(config_file))


class TestLogLevel:
    """Test log_level validation."""

    def test_invalid_log_level_rejected(self):
        """Test unknown level names fail at config time, not at server start."""
        with pytest.raises(ValueError, match="Invalid log_level 'verbose'"):
            MockConfig.from_dict({'log_level': 'verbose'})

    def test_invalid_log_level_in_yaml(self, tmp_path):
        config_file = tmp_path / 'rulemock.yaml'
        config_file.write_text('log_level: verbose\n')

        with pytest.raises(ValueError, match='Invalid log_level'):
            MockConfig.from_yaml(str(config_file))

    def test_invalid_log_level_override(self):
        with pytest.raises(ValueError):
            MockConfig().with_overrides(log_level='loud')

    def test_log_level_normalized(self):
        """Test level names are case-insensitive and map to logging levels."""
        config = MockConfig(log_level='WARNING')

        assert config.log_level == 'warning'
        assert config.logging_level == logging.WARNING

    def test_trace_maps_to_debug(self):
        assert MockConfig(log_level='trace').logging_level == logging.DEBUG
