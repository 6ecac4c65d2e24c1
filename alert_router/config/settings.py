"""Service configuration management"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any


def get_default_config() -> Dict[str, Any]:
    """Get default configuration"""
    return {
        'router': {
            'hostname': 'auto',
            'log_level': 'INFO',
            'log_file': None,
            'log_format': 'text',
            'routing_file': None,
            'external_url': 'http://localhost:9093',
        },
        'api': {
            'host': '0.0.0.0',
            'port': 9093,
        },
        'prometheus': {
            'enabled': True,
            'host': '0.0.0.0',
            'port': 9094,
        },
        'notifier': {
            'workers': 4,
            'max_attempts': 3,
            'backoff_multiplier': 1.0,
            'backoff_max': 30.0,
        },
        'maintenance': {
            'interval': 60,
            # resolved alerts are kept in memory this long
            'alert_retention': 3600,
        },
        'storage': {
            'enabled': True,
            'type': 'sqlite',
            'sqlite_path': './data/alert_router.db',
            'retention_days': 5,
        },
    }


def load_config(config_path: str = None) -> Dict[str, Any]:
    """
    Load configuration from file and environment variables

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary
    """
    # Start with defaults
    config = get_default_config()

    # Load from YAML file if provided
    if config_path:
        if not Path(config_path).exists():
            raise ValueError(f"Config file not found: {config_path}")
        try:
            with open(config_path, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config = merge_configs(config, yaml_config)
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Failed to load config from {config_path}: {e}")

    # Override with environment variables
    config = override_from_env(config)

    # Validate configuration
    validate_config(config)

    return config


def merge_configs(base: Dict, override: Dict) -> Dict:
    """Recursively merge two configuration dictionaries"""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value
    return result


def _env_int(name: str) -> int:
    try:
        return int(os.environ[name])
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {os.environ[name]!r}")


def override_from_env(config: Dict) -> Dict:
    """Override configuration from environment variables"""

    # Router settings
    if 'ROUTER_HOSTNAME' in os.environ:
        config['router']['hostname'] = os.environ['ROUTER_HOSTNAME']
    if 'LOG_LEVEL' in os.environ:
        config['router']['log_level'] = os.environ['LOG_LEVEL'].upper()
    if 'LOG_FILE' in os.environ:
        config['router']['log_file'] = os.environ['LOG_FILE']
    if 'LOG_FORMAT' in os.environ:
        config['router']['log_format'] = os.environ['LOG_FORMAT'].lower()
    if 'ALERTROUTER_ROUTING_FILE' in os.environ:
        config['router']['routing_file'] = os.environ['ALERTROUTER_ROUTING_FILE']
    if 'ALERTROUTER_EXTERNAL_URL' in os.environ:
        config['router']['external_url'] = os.environ['ALERTROUTER_EXTERNAL_URL']

    # API settings
    if 'API_HOST' in os.environ:
        config['api']['host'] = os.environ['API_HOST']
    if 'API_PORT' in os.environ:
        config['api']['port'] = _env_int('API_PORT')

    # Prometheus settings
    if 'PROMETHEUS_ENABLED' in os.environ:
        config['prometheus']['enabled'] = os.environ['PROMETHEUS_ENABLED'].lower() == 'true'
    if 'PROMETHEUS_PORT' in os.environ:
        config['prometheus']['port'] = _env_int('PROMETHEUS_PORT')
    if 'PROMETHEUS_HOST' in os.environ:
        config['prometheus']['host'] = os.environ['PROMETHEUS_HOST']

    # Storage settings
    if 'STORAGE_ENABLED' in os.environ:
        config['storage']['enabled'] = os.environ['STORAGE_ENABLED'].lower() == 'true'
    if 'STORAGE_SQLITE_PATH' in os.environ:
        config['storage']['sqlite_path'] = os.environ['STORAGE_SQLITE_PATH']

    # Notifier settings
    if 'NOTIFIER_WORKERS' in os.environ:
        config['notifier']['workers'] = _env_int('NOTIFIER_WORKERS')
    if 'NOTIFIER_MAX_ATTEMPTS' in os.environ:
        config['notifier']['max_attempts'] = _env_int('NOTIFIER_MAX_ATTEMPTS')

    return config


def validate_config(config: Dict):
    """
    Validate configuration values

    Raises:
        ValueError: If configuration is invalid
    """
    # Validate ports
    for section in ('api', 'prometheus'):
        port = config[section]['port']
        if not isinstance(port, int) or not (1 <= port <= 65535):
            raise ValueError(f"Invalid {section} port: {port}. Must be between 1 and 65535")

    if config['prometheus']['enabled'] and config['prometheus']['port'] == config['api']['port'] \
            and config['prometheus']['host'] == config['api']['host']:
        raise ValueError("api and prometheus cannot listen on the same address")

    # Validate log level
    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    log_level = config['router']['log_level'].upper()
    if log_level not in valid_log_levels:
        raise ValueError(f"Invalid log level: {log_level}. Must be one of {valid_log_levels}")

    valid_log_formats = ['text', 'json']
    log_format = config['router']['log_format']
    if log_format not in valid_log_formats:
        raise ValueError(f"Invalid log format: {log_format}. Must be one of {valid_log_formats}")

    # Validate notifier
    notifier = config['notifier']
    if notifier['workers'] < 1:
        raise ValueError(f"Invalid notifier workers: {notifier['workers']}. Must be >= 1")
    if notifier['max_attempts'] < 1:
        raise ValueError(f"Invalid notifier max_attempts: {notifier['max_attempts']}. Must be >= 1")
    if notifier['backoff_multiplier'] < 0 or notifier['backoff_max'] < 0:
        raise ValueError("Notifier backoff settings must be >= 0")

    # Validate maintenance loop
    maintenance = config['maintenance']
    if maintenance['interval'] <= 0:
        raise ValueError(f"Invalid maintenance interval: {maintenance['interval']}. Must be > 0")
    if maintenance['alert_retention'] < 0:
        raise ValueError(f"Invalid alert_retention: {maintenance['alert_retention']}. Must be >= 0")

    # Validate storage
    if config['storage'].get('enabled', True):
        storage_type = config['storage'].get('type', 'sqlite')
        if storage_type != 'sqlite':
            raise ValueError(f"Unsupported storage type: {storage_type}. Only 'sqlite' is currently supported")

        retention_days = config['storage'].get('retention_days', 5)
        if retention_days < 1:
            raise ValueError(f"Invalid retention_days: {retention_days}. Must be >= 1")
