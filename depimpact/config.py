"""Run configuration: the target library and the dependents to test it against.

The configuration is a single JSON document:

    {
      "target": {
        "repo_url": "...", "module_prefix": "...",
        "released_ref": "...", "modified_local_path": "...",
        "module_root": "..."            (optional, defaults to module_prefix)
      },
      "dependents": [
        {"repo_url": "...", "module_path": "...", "ref": "..."}
      ]
    }

Decoding is structural only. Missing string fields decode to `""` and fail later at the
point of use (an empty ref fails the clone). A missing `dependents` array decodes to `[]`.
Wrong JSON types (e.g. `dependents` not being an array, or a number where a string is
expected) and unreadable/invalid files raise `ConfigError`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigError


@dataclass(frozen=True)
class TargetConfig:
    repo_url: str
    module_prefix: str
    released_ref: str
    modified_local_path: str
    module_root: str = ""

    @property
    def effective_module_root(self) -> str:
        return self.module_root or self.module_prefix

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "TargetConfig":
        return TargetConfig(
            repo_url=_str_field(d, "repo_url", where="target"),
            module_prefix=_str_field(d, "module_prefix", where="target"),
            released_ref=_str_field(d, "released_ref", where="target"),
            modified_local_path=_str_field(d, "modified_local_path", where="target"),
            module_root=_str_field(d, "module_root", where="target"),
        )


@dataclass(frozen=True)
class DependentConfig:
    repo_url: str
    module_path: str
    ref: str

    @property
    def name(self) -> str:
        """Short human name derived from the repo URL (last path segment, no `.git`)."""
        tail = self.repo_url.rstrip("/").rsplit("/", 1)[-1]
        tail = tail.rsplit(":", 1)[-1]
        return tail.removesuffix(".git") or "dependent"

    @staticmethod
    def from_dict(d: Mapping[str, Any], *, index: int) -> "DependentConfig":
        where = f"dependents[{index}]"
        return DependentConfig(
            repo_url=_str_field(d, "repo_url", where=where),
            module_path=_str_field(d, "module_path", where=where),
            ref=_str_field(d, "ref", where=where),
        )


@dataclass(frozen=True)
class Config:
    target: TargetConfig
    dependents: list[DependentConfig] = field(default_factory=list)

    @staticmethod
    def from_dict(raw: Any) -> "Config":
        if not isinstance(raw, dict):
            raise ConfigError(f"config must be a JSON object, got {type(raw).__name__}")

        target_raw = raw.get("target")
        if target_raw is None:
            target_raw = {}
        if not isinstance(target_raw, dict):
            raise ConfigError(f"config field 'target' must be an object, got {type(target_raw).__name__}")

        deps_raw = raw.get("dependents")
        if deps_raw is None:
            deps_raw = []
        if not isinstance(deps_raw, list):
            raise ConfigError(f"config field 'dependents' must be an array, got {type(deps_raw).__name__}")

        dependents: list[DependentConfig] = []
        for idx, it in enumerate(deps_raw):
            if not isinstance(it, dict):
                raise ConfigError(f"dependents[{idx}] must be an object, got {type(it).__name__}")
            dependents.append(DependentConfig.from_dict(it, index=idx))

        return Config(target=TargetConfig.from_dict(target_raw), dependents=dependents)


def load_config(path: Path) -> Config:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid JSON in {path}: {e}") from e
    return Config.from_dict(raw)


def _str_field(d: Mapping[str, Any], key: str, *, where: str) -> str:
    v = d.get(key)
    if v is None:
        return ""
    if not isinstance(v, str):
        raise ConfigError(f"{where}.{key} must be a string, got {type(v).__name__}")
    return v
