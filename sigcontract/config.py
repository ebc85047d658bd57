"""
Configuration file loader for ``.sigcontract.yml``.

Provides defaults so the tool works without a config file, while allowing
per-project control of contract building, trace scope and output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_NAMES = (".sigcontract.yml", ".sigcontract.yaml")


def _string_list(key: str, value: Any) -> list[str]:
    if not isinstance(value, list):
        raise ValueError(f"{key} must be a list, got {type(value).__name__}")
    return [str(item) for item in value]


@dataclass
class BuildConfig:
    compress: bool = True
    filtered_prefixes: list[str] = field(default_factory=lambda: ["#<"])
    min_calls: int = 1


@dataclass
class TraceConfig:
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


@dataclass
class OutputConfig:
    format: str = "text"


@dataclass
class SigContractConfig:
    """Top-level configuration for sigcontract."""
    build: BuildConfig = field(default_factory=BuildConfig)
    trace: TraceConfig = field(default_factory=TraceConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def load(cls, root: Path) -> "SigContractConfig":
        """
        Load config from .sigcontract.yml, falling back to defaults.

        Raises:
            ValueError: the file exists but is not a valid configuration
        """
        for name in CONFIG_NAMES:
            config_path = root / name
            if config_path.exists():
                break
        else:
            return cls()

        with open(config_path) as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"{config_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ValueError(f"{config_path}: top level must be a mapping")
        return cls._from_dict(raw)

    @classmethod
    def _from_dict(cls, raw: dict[str, Any]) -> "SigContractConfig":
        build_raw = raw.get("build", {}) or {}
        trace_raw = raw.get("trace", {}) or {}
        output_raw = raw.get("output", {}) or {}

        build = BuildConfig(
            compress=bool(build_raw.get("compress", True)),
            filtered_prefixes=_string_list("build.filtered-prefixes", build_raw.get(
                "filtered-prefixes", build_raw.get("filtered_prefixes", ["#<"])
            )),
            min_calls=int(build_raw.get("min-calls", build_raw.get("min_calls", 1))),
        )

        trace = TraceConfig(
            include=_string_list("trace.include", trace_raw.get("include", [])),
            exclude=_string_list("trace.exclude", trace_raw.get("exclude", [])),
        )

        output_format = output_raw.get("format", "text")
        if output_format not in ("text", "json"):
            raise ValueError(f"unknown output format {output_format!r}")
        output = OutputConfig(format=output_format)

        return cls(build=build, trace=trace, output=output)

    def to_yaml(self) -> str:
        """Serialise to YAML string."""
        data = {
            "build": {
                "compress": self.build.compress,
                "filtered-prefixes": list(self.build.filtered_prefixes),
                "min-calls": self.build.min_calls,
            },
            "trace": {
                "include": list(self.trace.include),
                "exclude": list(self.trace.exclude),
            },
            "output": {
                "format": self.output.format,
            },
        }
        header = "# .sigcontract.yml: sigcontract configuration\n"
        return header + yaml.safe_dump(data, sort_keys=False)
