"""Configuration loader for the slideshow pipeline."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ModuleNotFoundError as exc:  # pragma: no cover - import guard
    raise RuntimeError(
        "PyYAML is required. Please install it with `pip install pyyaml`."
    ) from exc


@dataclass
class AppConfig:
    """Wrapper around raw configuration with resolved paths."""

    raw: Dict[str, Any]
    config_path: Optional[Path]
    project_root: Path
    log_file: Optional[Path]
    workspace_base: Optional[Path]

    @property
    def logging_level(self) -> str:
        level = (
            self.raw.get("logging", {}).get("level")
            or self.raw.get("logging", {}).get("LEVEL")
            or "INFO"
        )
        return str(level).upper()

    def to_debug_dict(self) -> Dict[str, Any]:
        return {
            "config_path": str(self.config_path) if self.config_path else None,
            "log_file": str(self.log_file) if self.log_file else None,
            "workspace_base": str(self.workspace_base) if self.workspace_base else None,
        }

    def dumps(self) -> str:
        """Return a JSON string for diagnostics."""
        return json.dumps(self.to_debug_dict(), ensure_ascii=False, indent=2)


def build_config(raw: Dict[str, Any], *, project_root: Path, config_path: Optional[Path] = None) -> AppConfig:
    """Resolve directories from an already-parsed configuration mapping."""
    logging_cfg = raw.get("logging", {}) if isinstance(raw.get("logging"), dict) else {}
    log_file_name = logging_cfg.get("file")
    log_file = (project_root / log_file_name).resolve() if log_file_name else None

    workspace_cfg = raw.get("workspace", {}) if isinstance(raw.get("workspace"), dict) else {}
    base_dir = workspace_cfg.get("base_dir")
    workspace_base = (project_root / str(base_dir)).resolve() if base_dir else None

    return AppConfig(
        raw=raw,
        config_path=config_path,
        project_root=project_root,
        log_file=log_file,
        workspace_base=workspace_base,
    )


def load_config(path: Path | str, project_root: Path | None = None) -> AppConfig:
    """Load YAML config and resolve key directories."""
    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    root = project_root.resolve() if project_root else config_path.parent
    return build_config(raw, project_root=root, config_path=config_path)
