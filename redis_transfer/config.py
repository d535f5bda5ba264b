"""
Redis Transfer工具的配置管理。

配置在迁移开始前一次性构建，之后不再修改。
来源优先级：YAML文件 < 命令行参数 < 环境变量（仅当对应参数仍为默认值时生效）。
"""

import os
import yaml
import logging
import colorlog
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Dict, Any, Optional, Mapping

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedisConfig:
    """Redis连接配置。"""
    host: str = "localhost"
    port: int = 6379
    username: Optional[str] = None
    password: Optional[str] = None
    db: int = 0
    socket_timeout: float = 60.0
    socket_connect_timeout: float = 30.0

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典，排除None值。"""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class TransferSettings:
    """迁移操作设置。"""
    snapshot_path: Optional[str] = None
    skip: int = 0
    max_retries: int = 3
    retry_delay: float = 0.5
    backoff_factor: float = 2.0
    scan_count: int = 1000


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    console: bool = True
    colored: bool = True


# 环境变量 -> RedisConfig 字段
REDIS_ENV_FIELDS = {
    'HOST': 'host',
    'PORT': 'port',
    'USERNAME': 'username',
    'PASSWORD': 'password',
    'DATABASE': 'db',
}


def _coerce(cls, name: str, raw: str, source: str):
    field_type = {f.name: f.type for f in fields(cls)}[name]
    if field_type in (int, 'int'):
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{source} must be an integer, got {raw!r}")
    return raw


def _env_overrides(obj, prefix: str, mapping: Mapping[str, str], environ: Mapping[str, str]):
    """只覆盖仍为默认值的字段。"""
    defaults = type(obj)()
    changes = {}
    for suffix, name in mapping.items():
        env_name = f"{prefix}{suffix}"
        raw = environ.get(env_name)
        if not raw:
            continue
        if getattr(obj, name) != getattr(defaults, name):
            continue
        changes[name] = _coerce(type(obj), name, raw, env_name)
    return replace(obj, **changes) if changes else obj


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    source: RedisConfig = RedisConfig()
    destination: RedisConfig = RedisConfig()
    transfer: TransferSettings = TransferSettings()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Config':
        """Create Config from dictionary."""
        data = data or {}
        try:
            return cls(
                source=RedisConfig(**(data.get('source') or {})),
                destination=RedisConfig(**(data.get('destination') or {})),
                transfer=TransferSettings(**(data.get('transfer') or {})),
                logging=LoggingConfig(**(data.get('logging') or {}))
            )
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config from {config_path}: {e}")
            raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e

        if data is not None and not isinstance(data, dict):
            raise ConfigurationError(f"{config_path}: top level must be a mapping")
        return cls.from_dict(data)

    def with_overrides(self,
                       source: Optional[Dict[str, Any]] = None,
                       destination: Optional[Dict[str, Any]] = None,
                       transfer: Optional[Dict[str, Any]] = None,
                       logging: Optional[Dict[str, Any]] = None) -> 'Config':
        """返回应用了显式覆盖值（忽略None）的新配置。"""
        def apply(obj, values):
            values = {k: v for k, v in (values or {}).items() if v is not None}
            return replace(obj, **values) if values else obj

        return replace(
            self,
            source=apply(self.source, source),
            destination=apply(self.destination, destination),
            transfer=apply(self.transfer, transfer),
            logging=apply(self.logging, logging),
        )

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> 'Config':
        """应用环境变量；只有仍为默认值的参数才会被覆盖。"""
        environ = os.environ if environ is None else environ
        return replace(
            self,
            source=_env_overrides(self.source, 'SOURCE_', REDIS_ENV_FIELDS, environ),
            destination=_env_overrides(self.destination, 'DESTINATION_', REDIS_ENV_FIELDS, environ),
            logging=_env_overrides(self.logging, 'LOG_', {'LEVEL': 'level', 'FILE': 'file'}, environ),
        )

    def validate(self) -> 'Config':
        """校验配置，无效时抛出 ConfigurationError。"""
        for name, redis_config in (('source', self.source), ('destination', self.destination)):
            if not redis_config.host:
                raise ConfigurationError(f"{name} host must not be empty")
            if not 0 < redis_config.port < 65536:
                raise ConfigurationError(f"{name} port out of range: {redis_config.port}")
            if redis_config.db < 0:
                raise ConfigurationError(f"{name} database must be >= 0: {redis_config.db}")

        if self.transfer.skip < 0:
            raise ConfigurationError(f"skip must be >= 0: {self.transfer.skip}")
        if self.transfer.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0: {self.transfer.max_retries}")
        if self.transfer.retry_delay < 0:
            raise ConfigurationError(f"retry_delay must be >= 0: {self.transfer.retry_delay}")
        if self.transfer.scan_count <= 0:
            raise ConfigurationError(f"scan_count must be > 0: {self.transfer.scan_count}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'source': asdict(self.source),
            'destination': asdict(self.destination),
            'transfer': asdict(self.transfer),
            'logging': asdict(self.logging)
        }

    def save_to_file(self, config_path: str):
        """Save configuration to YAML file."""
        config_dir = Path(config_path).parent
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, indent=2, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")


def setup_logging(config: LoggingConfig):
    """Setup logging based on configuration."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    if config.colored:
        console_formatter = colorlog.ColoredFormatter(
            '%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )
    else:
        console_formatter = logging.Formatter(config.format)

    file_formatter = logging.Formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if config.console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if config.file:
        log_dir = Path(config.file).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(config.file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger('redis').setLevel(logging.WARNING)


def create_sample_config() -> str:
    """Create a sample configuration file content."""
    sample = Config(destination=RedisConfig(port=6380)).to_dict()
    return yaml.safe_dump(sample, default_flow_style=False, indent=2, sort_keys=False)


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from a YAML file, or the defaults when no file is given.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration object
    """
    if config_path:
        return Config.from_file(config_path)

    logger.debug("Using default configuration")
    return Config()
