"""Key configuration file loader for YAML and JSON files."""

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml

_ENV_REFERENCE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$")


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Human-readable error message.
            field: Optional field name that failed validation.
        """
        self.message = message
        self.field = field
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return error message with field name if available."""
        if self.field:
            return f"Configuration error in field '{self.field}': {self.message}"
        return self.message


class ConfigurationFileLoader:
    """Loads provider key definitions from a YAML or JSON file.

    Expected layout:

        keys:
          - key: ${GROQ_KEY_PRIMARY}
            daily_capacity: 14400
          - ${GROQ_KEY_BACKUP}        # plain entry, default capacity

    A value of the form ${NAME} is read from the environment, so the file
    itself can be committed without secrets. Order in the file is the
    rotation order.
    """

    def __init__(self, config_file_path: str | Path) -> None:
        """Initialize ConfigurationFileLoader.

        Args:
            config_file_path: Path to the configuration file.

        Raises:
            ConfigurationError: If the file does not exist.
        """
        self._config_path = Path(config_file_path)
        if not self._config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self._config_path}")

    def load(self) -> dict[str, Any]:
        """Load configuration from file, choosing the parser by extension.

        Raises:
            ConfigurationError: If the format is unsupported or unparsable.
        """
        suffix = self._config_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            return self._load_yaml()
        elif suffix == ".json":
            return self._load_json()
        else:
            raise ConfigurationError(
                f"Unsupported configuration file format: {suffix}. "
                "Supported formats: .yaml, .yml, .json"
            )

    def _load_yaml(self) -> dict[str, Any]:
        try:
            with self._config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
                if data is None:
                    return {}
                if not isinstance(data, dict):
                    raise ConfigurationError("YAML file must contain a dictionary/mapping")
                return data
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}") from e

    def _load_json(self) -> dict[str, Any]:
        try:
            with self._config_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
                if not isinstance(data, dict):
                    raise ConfigurationError("JSON file must contain an object")
                return data
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}") from e

    @staticmethod
    def _resolve(value: str, field: str) -> str:
        match = _ENV_REFERENCE.match(value.strip())
        if not match:
            return value.strip()
        resolved = os.getenv(match.group(1), "").strip()
        if not resolved:
            raise ConfigurationError(
                f"Environment variable {match.group(1)} is not set", field=field
            )
        return resolved

    def parse_keys(
        self,
        config: dict[str, Any],
        default_capacity: int,
    ) -> list[tuple[str, int]]:
        """Parse the keys section into (key, daily_capacity) pairs.

        Args:
            config: Configuration dictionary returned by load().
            default_capacity: Capacity for entries that don't set one.

        Returns:
            Pairs in file order.

        Raises:
            ConfigurationError: If the keys section is malformed.
        """
        keys_config = config.get("keys", [])
        if not isinstance(keys_config, list):
            raise ConfigurationError("Configuration 'keys' must be a list", field="keys")

        parsed: list[tuple[str, int]] = []
        for idx, entry in enumerate(keys_config):
            field = f"keys[{idx}]"
            if isinstance(entry, str):
                entry = {"key": entry}
            if not isinstance(entry, dict):
                raise ConfigurationError(
                    f"Key configuration at index {idx} must be a string or dictionary",
                    field=field,
                )

            raw_key = entry.get("key")
            if not isinstance(raw_key, str) or not raw_key.strip():
                raise ConfigurationError(
                    f"Key configuration at index {idx} has invalid 'key' (must be non-empty string)",
                    field=f"{field}.key",
                )

            capacity = entry.get("daily_capacity", default_capacity)
            if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
                raise ConfigurationError(
                    f"Key configuration at index {idx} has invalid 'daily_capacity' "
                    "(must be a positive integer)",
                    field=f"{field}.daily_capacity",
                )

            parsed.append((self._resolve(raw_key, f"{field}.key"), capacity))

        return parsed
