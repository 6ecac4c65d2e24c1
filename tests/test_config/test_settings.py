"""Tests for service configuration loading"""

import pytest
import tempfile
import os
from pathlib import Path

from alert_router.config.settings import get_default_config, load_config, merge_configs, validate_config


def write_config(content):
    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(content)
        return f.name


@pytest.fixture
def clean_env(monkeypatch):
    for name in ('LOG_LEVEL', 'LOG_FORMAT', 'LOG_FILE', 'API_HOST', 'API_PORT', 'PROMETHEUS_PORT',
                 'PROMETHEUS_ENABLED', 'ALERTROUTER_ROUTING_FILE', 'STORAGE_ENABLED', 'NOTIFIER_WORKERS'):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadConfig:
    """Test configuration defaults, files and environment overrides"""

    def test_defaults(self, clean_env):
        config = load_config()

        assert config['api']['port'] == 9093
        assert config['prometheus']['port'] == 9094
        assert config['router']['routing_file'] is None
        assert config['notifier']['max_attempts'] == 3

    def test_file_overrides_defaults(self, clean_env):
        path = write_config("""
router:
  log_level: DEBUG
  routing_file: deploy/alertmanager.yml
api:
  port: 19093
""")
        try:
            config = load_config(path)
        finally:
            os.unlink(path)

        assert config['router']['log_level'] == 'DEBUG'
        assert config['router']['routing_file'] == 'deploy/alertmanager.yml'
        assert config['api']['port'] == 19093
        # untouched keys keep their defaults
        assert config['api']['host'] == '0.0.0.0'

    def test_env_overrides_file(self, clean_env):
        clean_env.setenv('LOG_LEVEL', 'warning')
        clean_env.setenv('API_PORT', '8080')
        clean_env.setenv('ALERTROUTER_ROUTING_FILE', '/etc/alertmanager.yml')
        clean_env.setenv('STORAGE_ENABLED', 'false')

        config = load_config()

        assert config['router']['log_level'] == 'WARNING'
        assert config['api']['port'] == 8080
        assert config['router']['routing_file'] == '/etc/alertmanager.yml'
        assert config['storage']['enabled'] is False

    def test_env_port_must_be_integer(self, clean_env):
        clean_env.setenv('PROMETHEUS_PORT', 'abc')

        with pytest.raises(ValueError, match="PROMETHEUS_PORT must be an integer"):
            load_config()

    def test_missing_file(self, clean_env):
        with pytest.raises(ValueError, match="Config file not found"):
            load_config('/nonexistent/config.yaml')

    def test_invalid_yaml(self, clean_env):
        path = write_config("router: [")
        try:
            with pytest.raises(ValueError, match="Failed to load config"):
                load_config(path)
        finally:
            os.unlink(path)

    def test_deploy_config_is_valid(self, clean_env):
        config = load_config(str(Path(__file__).resolve().parents[2] / 'deploy' / 'config.yaml'))
        assert config['router']['routing_file'] == 'deploy/alertmanager.yml'


class TestValidateConfig:
    """Test configuration validation"""

    def test_invalid_port(self):
        config = get_default_config()
        config['api']['port'] = 70000

        with pytest.raises(ValueError, match="Invalid api port"):
            validate_config(config)

    def test_same_address(self):
        config = get_default_config()
        config['prometheus']['port'] = config['api']['port']

        with pytest.raises(ValueError, match="same address"):
            validate_config(config)

    def test_invalid_log_level(self):
        config = get_default_config()
        config['router']['log_level'] = 'VERBOSE'

        with pytest.raises(ValueError, match="Invalid log level"):
            validate_config(config)

    def test_invalid_log_format(self):
        config = get_default_config()
        config['router']['log_format'] = 'xml'

        with pytest.raises(ValueError, match="Invalid log format"):
            validate_config(config)

    def test_invalid_workers(self):
        config = get_default_config()
        config['notifier']['workers'] = 0

        with pytest.raises(ValueError, match="notifier workers"):
            validate_config(config)

    def test_unsupported_storage(self):
        config = get_default_config()
        config['storage']['type'] = 'postgres'

        with pytest.raises(ValueError, match="Unsupported storage type"):
            validate_config(config)

    def test_merge_configs(self):
        base = {'a': {'b': 1, 'c': 2}, 'd': 3}
        assert merge_configs(base, {'a': {'b': 10}}) == {'a': {'b': 10, 'c': 2}, 'd': 3}
        # base is not modified
        assert base['a']['b'] == 1
