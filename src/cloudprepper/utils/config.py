#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration management module
Handles configuration file loading, environment overrides and defaults for cloudprepper
"""

import os
import logging
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict

from .constants import (
    DEFAULT_POLL_INTERVAL, DEFAULT_MAX_WAIT_TIME, DEFAULT_PER_ITEM_PAGE_SIZE,
    DEFAULT_RESUBMIT_RETRIES, DEFAULT_STATUS_FAILURE_THRESHOLD, DEFAULT_RECOVERY_PROBE_ROUNDS,
    DEFAULT_ALTERNATIVE_PATHS,
    COVERAGE_DEFAULT_TOTAL_TARGET, COVERAGE_UNDER_THRESHOLD, COVERAGE_OVER_THRESHOLD
)

logger = logging.getLogger('cloudprepper.config')


@dataclass
class BackendConfig:
    """Job backend connection configuration"""
    base_url: str = "http://localhost:36236"
    api_token: Optional[str] = None
    submit_path: str = "/api/questions/generateBatch"
    generate_path: str = "/api/questions/generateQuestion"
    status_path: str = "/api/questions/batch/{batch_id}/status"
    results_path: str = "/api/questions/batch/{batch_id}/results"
    domain_counts_path: str = "/api/questions/domainCounts"
    request_timeout: float = 30.0


@dataclass
class BatchConfig:
    """Batch polling and recovery configuration"""
    poll_interval: int = DEFAULT_POLL_INTERVAL
    max_wait_time: int = DEFAULT_MAX_WAIT_TIME
    status_failure_threshold: int = DEFAULT_STATUS_FAILURE_THRESHOLD
    recovery_probe_rounds: int = DEFAULT_RECOVERY_PROBE_ROUNDS
    per_item_page_size: int = DEFAULT_PER_ITEM_PAGE_SIZE
    resubmit_retries: int = DEFAULT_RESUBMIT_RETRIES
    alternative_paths: List[str] = field(default_factory=lambda: list(DEFAULT_ALTERNATIVE_PATHS))


@dataclass
class OutputConfig:
    """Question file output configuration"""
    questions_dir: str = "~/.cloudprepper/questions"


@dataclass
class CoverageConfig:
    """Coverage analysis configuration"""
    default_total_target: int = COVERAGE_DEFAULT_TOTAL_TARGET
    under_threshold: int = COVERAGE_UNDER_THRESHOLD
    over_threshold: int = COVERAGE_OVER_THRESHOLD


@dataclass
class LoggingConfig:
    """Logging configuration"""
    verbose: bool = False
    log_dir: str = "~/.cloudprepper/logs"


# Environment variable -> (section, key, converter)
ENV_OVERRIDES = {
    'CLOUDPREPPER_BASE_URL': ('backend', 'base_url', str),
    'CLOUDPREPPER_API_TOKEN': ('backend', 'api_token', str),
    'CLOUDPREPPER_GENERATE_BATCH': ('backend', 'submit_path', str),
    'CLOUDPREPPER_GENERATE_QUESTION': ('backend', 'generate_path', str),
    'CLOUDPREPPER_POLL_INTERVAL': ('batch', 'poll_interval', int),
    'CLOUDPREPPER_MAX_WAIT_TIME': ('batch', 'max_wait_time', int),
    'CLOUDPREPPER_QUESTIONS_DIR': ('output', 'questions_dir', str),
}


class Config:
    """Main configuration class"""

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None,
                 create_default: bool = True):
        """
        Initialize configuration

        Args:
            config_path: Configuration file path, if None use default path
            environ: Environment mapping used for overrides (defaults to os.environ)
            create_default: Write a default config file when none exists
        """
        self.config_path = self._resolve_config_path(config_path)
        self.config_dir = self.config_path.parent
        self._environ = os.environ if environ is None else environ
        self._create_default = create_default

        self._load_config()

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path"""
        if config_path:
            return Path(config_path).expanduser()
        return Path.home() / '.cloudprepper' / 'config.yaml'

    def _default_config(self) -> Dict[str, Any]:
        """Built-in defaults, one sub-dict per section"""
        return {
            'backend': asdict(BackendConfig()),
            'batch': asdict(BatchConfig()),
            'output': asdict(OutputConfig()),
            'coverage': asdict(CoverageConfig()),
            'logging': asdict(LoggingConfig()),
        }

    def _load_config(self):
        """Load configuration file"""
        default_config = self._default_config()

        # If config file exists, load and merge
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    user_config = yaml.safe_load(f) or {}
                self._config_data = self._deep_merge(default_config, user_config)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load configuration file {self.config_path}: {e}")
                self._config_data = default_config
        else:
            self._config_data = default_config
            if self._create_default:
                self._create_default_config()

        self._apply_env_overrides()

        self.backend = BackendConfig(**self._config_data['backend'])
        self.batch = BatchConfig(**self._config_data['batch'])
        self.output = OutputConfig(**self._config_data['output'])
        self.coverage = CoverageConfig(**self._config_data['coverage'])
        self.logging = LoggingConfig(**self._config_data['logging'])

    def _apply_env_overrides(self):
        """Apply CLOUDPREPPER_* environment variables on top of file values"""
        for env_name, (section, key, convert) in ENV_OVERRIDES.items():
            raw = self._environ.get(env_name)
            if raw is None or raw == '':
                continue
            try:
                self._config_data[section][key] = convert(raw)
            except ValueError:
                logger.warning(f"Ignoring {env_name}={raw!r}: expected {convert.__name__}")

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _create_default_config(self):
        """Create default configuration file"""
        # The token never goes to disk; it comes from the environment
        data = self._default_config()
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(data, f, default_flow_style=False,
                          allow_unicode=True, indent=2)
            logger.info(f"Created default configuration file: {self.config_path}")
        except OSError as e:
            logger.warning(f"Failed to create configuration file: {e}")

    def get_questions_dir(self) -> Path:
        """Get question output directory (not created here)"""
        return Path(self.output.questions_dir).expanduser()

    def get_log_dir(self) -> Path:
        """Get log directory"""
        return Path(self.logging.log_dir).expanduser()

    def save(self):
        """Save current configuration to file"""
        backend = asdict(self.backend)
        backend['api_token'] = None
        config_data = {
            'backend': backend,
            'batch': asdict(self.batch),
            'output': asdict(self.output),
            'coverage': asdict(self.coverage),
            'logging': asdict(self.logging),
        }

        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                yaml.dump(config_data, f, default_flow_style=False,
                          allow_unicode=True, indent=2)
        except OSError as e:
            raise OSError(f"Failed to save configuration: {e}") from e
