"""Configuration system for studentml.

Settings are read from a YAML file; any section or key left out keeps its
dataclass default. The file location can be overridden with the
STUDENTML_CONFIG environment variable.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


# Shipped config, outside the package directory
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "studentml_config.yaml"


@dataclass
class LimitsConfig:
    """Validation limits applied by the ObjectFactory."""

    max_fields: int = 10
    min_choices: int = 2
    max_choices: int = 10
    max_choice_length: int = 20
    max_training_items: int = 10
    max_image_url_length: int = 1024
    max_labels_length: int = 500
    supported_languages: List[str] = field(default_factory=lambda: [
        "en", "ar", "cs", "de", "el", "es", "fr", "it", "ja", "ko",
        "nl", "pt", "zh-cn", "zh-tw", "xx",
    ])


@dataclass
class TenantDefaultsConfig:
    """Policy given to a class that has not been configured."""

    project_types: List[str] = field(default_factory=lambda: ["text", "images", "numbers"])
    is_managed: bool = False
    max_users: int = 15
    max_projects_per_user: int = 2
    text_classifier_expiry_hours: int = 24
    image_classifier_expiry_hours: int = 24


@dataclass
class ServicesConfig:
    """Endpoints of the third-party classifier services."""

    visrec_url: str = "https://gateway-a.watsonplatform.net/visual-recognition/api"
    conv_url: str = "https://gateway.watsonplatform.net/conversation/api"


@dataclass
class DatabaseConfig:
    """Location and locking behaviour of the SQLite database."""

    path: str = "data/studentml.db"
    busy_timeout_ms: int = 30000

    def get_absolute_path(self, base_dir: Optional[Path] = None) -> Path:
        """Resolve the database path, relative paths against the repository root."""
        db_path = Path(self.path)
        if db_path.is_absolute():
            return db_path
        base = base_dir or Path(__file__).parent.parent.parent
        return base / db_path


@dataclass
class LoggingConfig:
    """Log level and destinations for the studentml logger."""

    level: str = "INFO"
    file: str = ""
    console: bool = True
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class StudentMLConfig:
    """Main configuration container for studentml.

    Usage:
        # Load from default location
        config = StudentMLConfig.load()

        # Load from specific file
        config = StudentMLConfig.load("/path/to/config.yaml")

        print(config.limits.max_fields)
        print(config.database.path)
    """

    name: str = "studentml"
    version: str = "0.1.0"

    limits: LimitsConfig = field(default_factory=LimitsConfig)
    tenant_defaults: TenantDefaultsConfig = field(default_factory=TenantDefaultsConfig)
    services: ServicesConfig = field(default_factory=ServicesConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    _config_path: Optional[Path] = field(default=None, repr=False)

    @classmethod
    def load(cls, config_path: Optional[str | Path] = None) -> StudentMLConfig:
        """Load configuration from YAML file.

        Args:
            config_path: Path to config file. If None, uses default location.
                        Can also be set via STUDENTML_CONFIG environment variable.

        Returns:
            Loaded StudentMLConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is invalid YAML
        """
        if config_path is None:
            config_path = os.environ.get("STUDENTML_CONFIG", DEFAULT_CONFIG_PATH)

        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        raw_config = yaml.safe_load(path.read_text()) or {}

        return cls.from_dict(raw_config, config_path=path)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        config_path: Optional[Path] = None
    ) -> StudentMLConfig:
        """Create config from dictionary, using defaults for missing sections."""
        framework = data.get("framework", {})

        def parse_section(section_name: str, config_cls: type) -> Any:
            section_data = data.get(section_name) or {}
            valid_fields = {f.name for f in config_cls.__dataclass_fields__.values()}
            filtered = {k: v for k, v in section_data.items() if k in valid_fields}
            return config_cls(**filtered)

        return cls(
            name=framework.get("name", "studentml"),
            version=framework.get("version", "0.1.0"),
            limits=parse_section("limits", LimitsConfig),
            tenant_defaults=parse_section("tenant_defaults", TenantDefaultsConfig),
            services=parse_section("services", ServicesConfig),
            database=parse_section("database", DatabaseConfig),
            logging=parse_section("logging", LoggingConfig),
            _config_path=config_path,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Nested dict in the same shape as the YAML file."""
        from dataclasses import asdict

        return {
            "framework": {"name": self.name, "version": self.version},
            "limits": asdict(self.limits),
            "tenant_defaults": asdict(self.tenant_defaults),
            "services": asdict(self.services),
            "database": asdict(self.database),
            "logging": asdict(self.logging),
        }

    def save(self, path: Optional[str | Path] = None) -> None:
        """Save configuration to YAML file.

        Raises:
            ValueError: If no path specified and no source path known
        """
        save_path = Path(path) if path else self._config_path
        if save_path is None:
            raise ValueError("No save path specified and no source path known")

        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Check the limits and defaults for values the factory cannot work with.

        Returns:
            Problems found, empty when the configuration is usable
        """
        errors = []
        limits = self.limits

        if limits.max_fields <= 0:
            errors.append("max_fields must be positive")

        if limits.min_choices < 1:
            errors.append("min_choices must be at least 1")

        if limits.max_choices < limits.min_choices:
            errors.append("max_choices must be >= min_choices")

        if limits.max_training_items <= 0:
            errors.append("max_training_items must be positive")

        if not limits.supported_languages:
            errors.append("No supported languages configured")

        unknown_types = set(self.tenant_defaults.project_types) - {"text", "images", "numbers"}
        if unknown_types:
            errors.append(f"Unknown project types: {', '.join(sorted(unknown_types))}")

        if not isinstance(logging.getLevelName(self.logging.level.upper()), int):
            errors.append(f"Unknown logging level: {self.logging.level}")

        return errors


def configure_logging(config: LoggingConfig) -> None:
    """Install handlers on the studentml logger from a LoggingConfig."""
    logger = logging.getLogger("studentml")
    logger.setLevel(config.level.upper())
    formatter = logging.Formatter(config.format)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if config.console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(formatter)
        logger.addHandler(console)

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def get_default_config() -> StudentMLConfig:
    """Built-in defaults, used when no config file can be found."""
    return StudentMLConfig()
