from __future__ import annotations

import os
import sys
from pathlib import Path


def platform_default_data_dir() -> Path:
    home = Path.home()
    if sys.platform.startswith("win"):
        root = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        return root / "homelink"
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "homelink"
    return Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share")) / "homelink"


def ensure_data_tree(data_dir: Path) -> dict[str, Path]:
    tree = {
        "root": data_dir,
        "backups": data_dir / "backups",
        "logs": data_dir / "logs",
        "config": data_dir / "config",
    }
    for path in tree.values():
        path.mkdir(parents=True, exist_ok=True)
    return tree


def resolve_data_dir(data_dir: str | None) -> Path:
    if data_dir:
        return Path(data_dir).expanduser().resolve()
    return platform_default_data_dir().resolve()
