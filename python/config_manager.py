"""
Configuration Management Module
Loads and validates configuration from config.yaml
"""

import yaml
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DatabaseConfig:
    """Database configuration"""
    host: str = "localhost"
    port: int = 5432
    user: str = "ledger_user"
    password: str = "ledger_password"
    name: str = "ledger"
    echo: bool = False


@dataclass
class PostingConfig:
    """Journal posting configuration"""
    default_governance_tier: int = 3  # Applied to accounts without a tier
    amount_precision: int = 2
    journal_number_prefix: str = "JE-"
    guard_error_prefix: str = "PostingGuard: "


@dataclass
class MetadataConfig:
    """Metadata lookup configuration"""
    usage_logging: bool = True
    tool_name: str = "metadata.lookupConcept"
    default_actor_type: str = "AGENT"


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = "logs/ledger.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    audit_log_dir: str = "logs"
    audit_to_file: bool = True


@dataclass
class MonitoringSettings:
    """Query monitoring configuration"""
    slow_query_threshold_ms: float = 1000.0
    warning_threshold_ms: float = 500.0
    enable_prometheus: bool = True


@dataclass
class ApiConfig:
    """HTTP API configuration"""
    journal_list_limit: int = 50


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.database: DatabaseConfig = DatabaseConfig()
        self.posting: PostingConfig = PostingConfig()
        self.metadata: MetadataConfig = MetadataConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.monitoring: MonitoringSettings = MonitoringSettings()
        self.api: ApiConfig = ApiConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_database()
        self._parse_posting()
        self._parse_metadata()
        self._parse_logging()
        self._parse_monitoring()
        self._parse_api()
        self._validate()

    def _parse_database(self) -> None:
        """Parse database configuration"""
        cfg = self._raw_config.get('database', {})
        self.database = DatabaseConfig(
            host=cfg.get('host', self.database.host),
            port=cfg.get('port', self.database.port),
            user=cfg.get('user', self.database.user),
            password=cfg.get('password', self.database.password),
            name=cfg.get('name', self.database.name),
            echo=cfg.get('echo', False)
        )

    def _parse_posting(self) -> None:
        """Parse posting configuration"""
        cfg = self._raw_config.get('posting', {})
        self.posting = PostingConfig(
            default_governance_tier=cfg.get('default_governance_tier', 3),
            amount_precision=cfg.get('amount_precision', 2),
            journal_number_prefix=cfg.get('journal_number_prefix', 'JE-'),
            guard_error_prefix=cfg.get('guard_error_prefix', self.posting.guard_error_prefix)
        )

    def _parse_metadata(self) -> None:
        """Parse metadata lookup configuration"""
        cfg = self._raw_config.get('metadata', {})
        self.metadata = MetadataConfig(
            usage_logging=cfg.get('usage_logging', True),
            tool_name=cfg.get('tool_name', 'metadata.lookupConcept'),
            default_actor_type=cfg.get('default_actor_type', 'AGENT')
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._raw_config.get('logging', {})
        self.logging = LoggingConfig(
            level=cfg.get('level', 'INFO'),
            file=cfg.get('file', 'logs/ledger.log'),
            console=cfg.get('console', True),
            format=cfg.get('format', self.logging.format),
            audit_log_dir=cfg.get('audit_log_dir', 'logs'),
            audit_to_file=cfg.get('audit_to_file', True)
        )

    def _parse_monitoring(self) -> None:
        """Parse monitoring configuration"""
        cfg = self._raw_config.get('monitoring', {})
        self.monitoring = MonitoringSettings(
            slow_query_threshold_ms=cfg.get('slow_query_threshold_ms', 1000.0),
            warning_threshold_ms=cfg.get('warning_threshold_ms', 500.0),
            enable_prometheus=cfg.get('enable_prometheus', True)
        )

    def _parse_api(self) -> None:
        """Parse API configuration"""
        cfg = self._raw_config.get('api', {})
        self.api = ApiConfig(
            journal_list_limit=cfg.get('journal_list_limit', 50)
        )

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary (database password omitted)"""
        return {
            'database': {
                'host': self.database.host,
                'port': self.database.port,
                'user': self.database.user,
                'name': self.database.name
            },
            'posting': {
                'default_governance_tier': self.posting.default_governance_tier,
                'amount_precision': self.posting.amount_precision,
                'journal_number_prefix': self.posting.journal_number_prefix
            },
            'metadata': {
                'usage_logging': self.metadata.usage_logging,
                'tool_name': self.metadata.tool_name,
                'default_actor_type': self.metadata.default_actor_type
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file,
                'console': self.logging.console
            },
            'monitoring': {
                'slow_query_threshold_ms': self.monitoring.slow_query_threshold_ms,
                'warning_threshold_ms': self.monitoring.warning_threshold_ms,
                'enable_prometheus': self.monitoring.enable_prometheus
            },
            'api': {
                'journal_list_limit': self.api.journal_list_limit
            }
        }

    def _validate(self) -> None:
        """Validate configuration values"""
        tier = self.posting.default_governance_tier
        if not isinstance(tier, int) or isinstance(tier, bool) or not 1 <= tier <= 5:
            raise ConfigurationError(
                f"posting.default_governance_tier must be an integer between 1 and 5, got {tier!r}"
            )

        precision = self.posting.amount_precision
        if not isinstance(precision, int) or isinstance(precision, bool) or precision < 0:
            raise ConfigurationError(
                f"posting.amount_precision must be a non-negative integer, got {precision!r}"
            )

        if not self.posting.journal_number_prefix:
            raise ConfigurationError("posting.journal_number_prefix must not be empty")

        if self.metadata.default_actor_type not in ("AGENT", "HUMAN", "SYSTEM"):
            raise ConfigurationError(
                f"metadata.default_actor_type must be AGENT, HUMAN or SYSTEM, "
                f"got {self.metadata.default_actor_type!r}"
            )

        level = str(self.logging.level).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Unknown logging level: {self.logging.level}")


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)


def configure_logging(config: Optional[ConfigManager] = None) -> None:
    """Apply the logging section to the root logger"""
    config = config or get_config()
    handlers: list = []

    if config.logging.console:
        handlers.append(logging.StreamHandler())

    if config.logging.file:
        log_path = Path(config.logging.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper()),
        format=config.logging.format,
        handlers=handlers or None,
        force=True
    )
