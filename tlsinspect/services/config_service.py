"""
Configuration service for loading and validating inspector settings.
"""
import os
import configparser
from dataclasses import replace
from typing import Optional, Dict, Any
import logging

from ..models.config import Config, ConfigValidationError, ConfigValidationResult


class ConfigService:
    """Service for loading and validating inspector configuration."""

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._config = None
        if config_path:
            self._config = self.load_config(config_path)

    def get_config(self) -> Config:
        """
        Get the loaded configuration, falling back to defaults.

        Returns:
            Config object
        """
        if self._config is None:
            self._config = Config()
        return self._config

    def load_config(self, config_path: str) -> Config:
        """
        Load configuration from a property file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid or has validation errors
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config_data = self._load_config_file(config_path)
        config = self._create_config_from_data(config_data)

        validation_result = self.validate_config(config)

        if validation_result.has_errors():
            error_summary = validation_result.get_error_summary()
            raise ValueError(f"Configuration validation failed:\n{error_summary}")

        if validation_result.has_warnings():
            warning_summary = validation_result.get_error_summary()
            self.logger.warning(f"Configuration warnings:\n{warning_summary}")

        self._config = config
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration data from file."""
        config_parser = configparser.ConfigParser()

        try:
            config_parser.read(config_path)
        except configparser.Error as e:
            raise ValueError(f"Failed to parse configuration file: {e}")

        # Flatten to section.key
        config_data = {}
        for section in config_parser.sections():
            for key, value in config_parser.items(section):
                config_data[f"{section}.{key}"] = value

        for key, value in config_parser.defaults().items():
            config_data.setdefault(key, value)

        return config_data

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> Config:
        """Create Config object from configuration data."""
        config_mapping = {
            # Connection settings
            "connection.port": ("default_port", int),
            "default_port": ("default_port", int),
            "connection.timeout_seconds": ("timeout_seconds", float),
            "timeout_seconds": ("timeout_seconds", float),
            "connection.verification_mode": ("verification_mode", str),
            "verification_mode": ("verification_mode", str),
            "connection.max_workers": ("max_workers", int),
            "max_workers": ("max_workers", int),

            # Output settings
            "output.format": ("output_format", str),
            "output_format": ("output_format", str),
            "output.verbose": ("verbose", bool),
            "verbose": ("verbose", bool),

            # Application settings
            "app.log_level": ("log_level", str),
            "log_level": ("log_level", str),
            "app.log_file_path": ("log_file_path", str),
            "log_file_path": ("log_file_path", str),
        }

        config_kwargs = {}

        for config_key, raw_value in config_data.items():
            if config_key not in config_mapping:
                # configparser copies DEFAULT keys into every section
                if "." in config_key and config_key.split(".", 1)[1] in config_mapping:
                    continue
                self.logger.warning(f"Ignoring unknown configuration key: {config_key}")
                continue

            field_name, field_type = config_mapping[config_key]
            try:
                if field_type == bool:
                    value = self._parse_bool(raw_value)
                elif field_type == int:
                    value = int(raw_value)
                elif field_type == float:
                    value = float(raw_value)
                else:
                    value = str(raw_value).strip() or None
                    if field_name == "log_level" and value:
                        value = value.upper()
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid value for {config_key}: {raw_value} ({e})")

            if value is None and field_name != "log_file_path":
                continue
            config_kwargs[field_name] = value

        return Config(**config_kwargs)

    def _parse_bool(self, value: Any) -> bool:
        """Parse boolean value from string."""
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "yes", "1", "on", "enabled")
        return bool(value)

    def apply_overrides(self, config: Config, **overrides) -> Config:
        """
        Return a copy of config with command-line values applied.

        Keys whose value is None are left untouched.
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return config
        updated = replace(config, **changes)
        self._config = updated
        return updated

    def validate_config(self, config: Config) -> ConfigValidationResult:
        """
        Validate configuration settings.

        Args:
            config: Configuration object to validate

        Returns:
            ConfigValidationResult with validation results
        """
        errors = []
        warnings = []

        if config.log_file_path:
            log_dir = os.path.dirname(config.log_file_path)
            if log_dir and not os.path.exists(log_dir):
                warnings.append(ConfigValidationError(
                    "log_file_path",
                    f"Log directory does not exist and will be created: {log_dir}",
                    "warning"
                ))

        if config.timeout_seconds > 120:
            warnings.append(ConfigValidationError(
                "timeout_seconds",
                "Timeout over 2 minutes hides hung handshakes for a long time",
                "warning"
            ))

        if config.max_workers > 64:
            errors.append(ConfigValidationError(
                "max_workers",
                "max_workers must not exceed 64"
            ))

        if config.verification_mode == "report" and config.output_format == "json":
            warnings.append(ConfigValidationError(
                "verification_mode",
                "Untrusted chains are reported in the JSON 'trust' field only",
                "warning"
            ))

        all_issues = errors + warnings
        return ConfigValidationResult(
            is_valid=len(errors) == 0,
            errors=all_issues,
            warnings=[]
        )

    def create_default_config_file(self, config_path: str) -> None:
        """
        Write a configuration file holding the built-in defaults.

        Args:
            config_path: Path where to create the config file

        Raises:
            FileExistsError: If something already exists at config_path
        """
        defaults = Config()
        config_parser = configparser.ConfigParser()
        config_parser["connection"] = {
            "port": str(defaults.default_port),
            "timeout_seconds": str(defaults.timeout_seconds),
            "verification_mode": defaults.verification_mode,
            "max_workers": str(defaults.max_workers),
        }
        config_parser["output"] = {
            "format": defaults.output_format,
            "verbose": str(defaults.verbose).lower(),
        }
        config_parser["app"] = {
            "log_level": defaults.log_level,
            "log_file_path": defaults.log_file_path or "",
        }

        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'x') as f:
            f.write("# tlsinspect configuration\n")
            f.write("# verification_mode: strict refuses untrusted peers, report shows the chain and flags it\n\n")
            config_parser.write(f)

        self.logger.info(f"Created default configuration file: {config_path}")
