"""
Configuration data models for the TLS inspector.
"""
from dataclasses import dataclass
from typing import Optional

VERIFICATION_MODES = ("strict", "report")
OUTPUT_FORMATS = ("text", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Main configuration class containing all inspector settings."""

    # Connection settings
    default_port: int = 443
    timeout_seconds: float = 10.0
    verification_mode: str = "strict"
    max_workers: int = 4

    # Output settings
    output_format: str = "text"
    verbose: bool = False

    # Application settings
    log_level: str = "WARNING"
    log_file_path: Optional[str] = None

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_types()

    def _validate_types(self):
        """Ensure all configuration values have correct types."""
        if not isinstance(self.default_port, int) or not (1 <= self.default_port <= 65535):
            raise ValueError("default_port must be an integer between 1 and 65535")

        if isinstance(self.timeout_seconds, bool) or not isinstance(self.timeout_seconds, (int, float)) \
                or self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be a positive number")

        if not isinstance(self.max_workers, int) or self.max_workers <= 0:
            raise ValueError("max_workers must be a positive integer")

        if self.verification_mode not in VERIFICATION_MODES:
            raise ValueError("verification_mode must be one of: strict, report")

        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError("output_format must be one of: text, json")

        if self.log_level not in LOG_LEVELS:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    severity: str = "error"  # error, warning

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: list[ConfigValidationError]
    warnings: list[ConfigValidationError]

    def __post_init__(self):
        """Separate errors and warnings."""
        all_issues = self.errors + self.warnings
        self.errors = [e for e in all_issues if e.severity == "error"]
        self.warnings = [e for e in all_issues if e.severity == "warning"]

    def has_errors(self) -> bool:
        """Check if there are any validation errors."""
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        """Check if there are any validation warnings."""
        return len(self.warnings) > 0

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors and warnings."""
        lines = []

        if self.errors:
            lines.append("Configuration Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        if self.warnings:
            lines.append("Configuration Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines) if lines else "Configuration is valid"
