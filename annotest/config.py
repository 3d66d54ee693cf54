"""
Configuration loading for annotest runs.

Reads ``annotest.yaml`` files. The label selector is passed explicitly to
``Suite.run``; nothing here is process-global.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from annotest.analysis.parser import DEFAULT_FILE_PATTERN

CONFIG_FILE_NAME = "annotest.yaml"


class AnnotestConfig(BaseModel):
    """Settings for scanning and running a test directory."""

    model_config = {"frozen": True}

    labels: str | None = Field(
        default=None, description="Label selector, e.g. 'unit,integration'; None selects the default label"
    )
    auto_classify: bool = Field(default=True, description="Classify functions by name prefix")
    file_pattern: str = Field(default=DEFAULT_FILE_PATTERN, description="Glob for test source files")
    verbose: bool = Field(default=False, description="Enable debug logging")

    def to_yaml(self) -> str:
        """Serialize to YAML format."""
        result: str = yaml.dump(
            self.model_dump(mode="json"),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        return result


class ConfigLoader:
    """Load and validate annotest configuration from YAML files."""

    @classmethod
    def from_yaml(cls, path: str | Path) -> AnnotestConfig:
        """
        Load configuration from a YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            AnnotestConfig loaded from file
        """
        path = Path(path)
        if not path.exists():
            msg = f"Configuration file not found: {path}"
            raise FileNotFoundError(msg)

        with path.open() as f:
            data = yaml.safe_load(f)

        return cls._parse_config(data or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnnotestConfig:
        """Create configuration from a dictionary."""
        return cls._parse_config(data)

    @classmethod
    def discover(cls, directory: str | Path) -> AnnotestConfig:
        """
        Load ``annotest.yaml`` from ``directory`` when present.

        Returns:
            The file's configuration, or defaults when there is none.
        """
        path = Path(directory)
        if path.is_file():
            path = path.parent
        candidate = path / CONFIG_FILE_NAME
        if candidate.is_file():
            return cls.from_yaml(candidate)
        return AnnotestConfig()

    @classmethod
    def _parse_config(cls, data: dict[str, Any]) -> AnnotestConfig:
        """Parse configuration dictionary into AnnotestConfig."""
        if not isinstance(data, dict):
            msg = f"Configuration must be a mapping, got {type(data).__name__}"
            raise ValueError(msg)

        # Accept a YAML list as well as a comma-separated selector
        labels = data.get("labels")
        if isinstance(labels, list):
            labels = ",".join(str(label) for label in labels)

        return AnnotestConfig(
            labels=labels or None,
            auto_classify=data.get("auto_classify", True),
            file_pattern=data.get("file_pattern", DEFAULT_FILE_PATTERN),
            verbose=data.get("verbose", False),
        )

    @classmethod
    def generate_sample_config(cls) -> str:
        """Return a commented sample configuration."""
        return """# annotest configuration
# Labels to run, comma separated. Leave empty to run the default label.
labels: unit

# Classify undirected functions by name prefix (test_, fix_, pre_, post_ ...)
auto_classify: true

# Glob for test source files, relative to the scanned directory
file_pattern: "test_*.py"

verbose: false
"""
