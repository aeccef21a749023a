import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from rich.logging import RichHandler

from table_impact import config
from table_impact.policy import NamingPolicy

CACHE_VALIDATION_MODES = ('fingerprint', 'presence')
EXECUTOR_KINDS = ('process', 'thread')


class ConfigManager:
    """
    Manages application configuration and sets up logging.
    Values come from the ``config`` module, then an optional YAML settings file,
    then keyword overrides. Ensures that all required configuration parameters are present.
    """
    REQUIRED = [
        'CACHE_DIR', 'TABLE_INDEX_FILE', 'REPOSITORY_MAPPING_FILE', 'CALL_SITE_LOG_FILE',
        'CACHE_VALIDATION', 'MODULE_DESCRIPTOR', 'SOURCE_DIR', 'MAPPER_PATH_MARKERS',
    ]

    def __init__(self, settings_file: Optional[Path] = None, **overrides: Any):
        values = self._defaults()
        if settings_file:
            values.update(self._load_settings_file(Path(settings_file)))
        values.update({key.upper(): value for key, value in overrides.items()})
        self._validate_config(values)

        self.cache_dir = Path(values['CACHE_DIR'])
        self.table_index_file = self.cache_dir / values['TABLE_INDEX_FILE']
        self.repository_mapping_file = self.cache_dir / values['REPOSITORY_MAPPING_FILE']
        self.call_site_log_file = self.cache_dir / values['CALL_SITE_LOG_FILE']
        self.cache_validation = values['CACHE_VALIDATION']

        self.table_index_flush_every = int(values.get('TABLE_INDEX_FLUSH_EVERY', 1000))
        self.repository_mapping_flush_every = int(values.get('REPOSITORY_MAPPING_FLUSH_EVERY', 1000))
        self.call_site_log_batch_size = int(values.get('CALL_SITE_LOG_BATCH_SIZE', 1000))

        self.module_descriptor = values['MODULE_DESCRIPTOR']
        self.source_dir = values['SOURCE_DIR']
        self.resource_dirs = list(values.get('RESOURCE_DIRS', []))
        self.excluded_dirs = set(values.get('EXCLUDED_DIRS', []))
        self.mapper_path_markers = list(values['MAPPER_PATH_MARKERS'])
        self.source_encoding = values.get('SOURCE_ENCODING', 'utf-8')
        self.resolve_sql_includes = bool(values.get('RESOLVE_SQL_INCLUDES', False))

        self.workers = values.get('WORKERS') or os.cpu_count() or 1
        self.executor = values.get('EXECUTOR', 'process')

        self.business_layer_markers = list(values.get('BUSINESS_LAYER_MARKERS', []))
        self.business_layer_suffixes = list(values.get('BUSINESS_LAYER_SUFFIXES', []))
        self.data_access_markers = list(values.get('DATA_ACCESS_MARKERS', []))
        self.data_access_suffixes = list(values.get('DATA_ACCESS_SUFFIXES', []))
        policy_file = values.get('NAMING_POLICY_FILE')
        self.naming_policy_file = Path(policy_file) if policy_file else None

        self.log_level = values.get('LOG_LEVEL', 'INFO')
        self.log_format = values.get('LOG_FORMAT', '%(message)s')

    @staticmethod
    def _defaults() -> Dict[str, Any]:
        return {name: getattr(config, name) for name in dir(config) if name.isupper()}

    @staticmethod
    def _load_settings_file(settings_file: Path) -> Dict[str, Any]:
        """Reads a YAML mapping of configuration names (case-insensitive) to values."""
        if not settings_file.is_file():
            raise ValueError(f"Error: Settings file not found: {settings_file}")
        with settings_file.open('r', encoding='utf-8') as file:
            loaded = yaml.safe_load(file) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Error: Settings file must contain a mapping: {settings_file}")
        return {str(key).upper(): value for key, value in loaded.items()}

    def _validate_config(self, values: Dict[str, Any]):
        """Checks for the presence of required parameters and for valid enumerated values."""
        missing = [cfg for cfg in self.REQUIRED if values.get(cfg) in (None, '')]
        if missing:
            raise ValueError(f"Error: Missing required configuration parameters: {', '.join(missing)}")

        unknown = sorted(set(values) - set(self._defaults()))
        if unknown:
            raise ValueError(f"Error: Unknown configuration parameters: {', '.join(unknown)}")

        if values['CACHE_VALIDATION'] not in CACHE_VALIDATION_MODES:
            raise ValueError(
                f"Error: CACHE_VALIDATION must be one of {CACHE_VALIDATION_MODES}, got '{values['CACHE_VALIDATION']}'"
            )
        if values.get('EXECUTOR', 'process') not in EXECUTOR_KINDS:
            raise ValueError(f"Error: EXECUTOR must be one of {EXECUTOR_KINDS}, got '{values.get('EXECUTOR')}'")

        for name in ('TABLE_INDEX_FLUSH_EVERY', 'REPOSITORY_MAPPING_FLUSH_EVERY', 'CALL_SITE_LOG_BATCH_SIZE'):
            if name in values and int(values[name]) < 1:
                raise ValueError(f"Error: {name} must be a positive integer, got {values[name]}")
        if values.get('WORKERS') is not None and int(values['WORKERS']) < 1:
            raise ValueError(f"Error: WORKERS must be a positive integer, got {values['WORKERS']}")

    def naming_policy(self, logger: Optional[logging.Logger] = None) -> NamingPolicy:
        """Builds the naming policy from the configured conventions and the optional policy file."""
        policy = NamingPolicy(
            business_layer_markers=tuple(self.business_layer_markers),
            business_layer_suffixes=tuple(self.business_layer_suffixes),
            data_access_markers=tuple(self.data_access_markers),
            data_access_suffixes=tuple(self.data_access_suffixes),
        )
        if self.naming_policy_file:
            policy = NamingPolicy.from_yaml(self.naming_policy_file, base=policy, logger=logger)
        return policy

    def setup_logging(self) -> logging.Logger:
        """Configures the application's logger."""
        logging.basicConfig(
            level=self.log_level,
            format=self.log_format,
            encoding='utf-8',
            handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_path=False)]
        )
        return logging.getLogger('table_impact')
