from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


ENV_PREFIX = "PRICEBENCH_"


def _parse_env_line(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export "):]
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def load_env_if_present(*, override: bool = False, search_dirs: Optional[list[Path]] = None) -> list[Path]:
    """Load `.env` files into the process environment.

    - Searches the repo root then `backend/` unless `search_dirs` is given.
    - Existing environment variables win unless override=True.
    - Returns the files that were read.
    """
    if search_dirs is None:
        # backend/app/core/env.py -> backend/app/core -> backend/app -> backend -> repo root
        repo_root = Path(__file__).resolve().parents[3]
        search_dirs = [repo_root, repo_root / "backend"]

    loaded: list[Path] = []
    for d in search_dirs:
        p = d / ".env"
        if not p.is_file():
            continue
        try:
            content = p.read_text(encoding="utf-8")
        except OSError:
            continue
        for raw in content.splitlines():
            parsed = _parse_env_line(raw)
            if not parsed:
                continue
            k, v = parsed
            if not override and k in os.environ:
                continue
            os.environ[k] = v
        loaded.append(p)
    return loaded


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    value = env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer (got {value!r}).") from exc


def env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    value = env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number (got {value!r}).") from exc
