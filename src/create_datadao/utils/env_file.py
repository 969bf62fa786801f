"""Helpers for the ``.env`` files of the template components."""

import shutil
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values, set_key
from loguru import logger

PathLike = Union[str, Path]


def read_env(path: PathLike) -> Dict[str, str]:
    """Parse a ``.env`` file; a missing file reads as empty."""
    path = Path(path)
    if not path.exists():
        return {}
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


def get_env_value(path: PathLike, key: str) -> Optional[str]:
    return read_env(path).get(key)


def write_env_file(path: PathLike, values: Mapping[str, str], header: Optional[str] = None) -> Path:
    """
    Write a fresh ``.env`` file, replacing any existing one.

    Args:
        path: Destination file
        values: Variables in the order they should appear
        header: Optional comment placed on the first line

    Returns:
        The written path
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"# {header}"] if header else []
    lines.extend(f"{key}={value}" for key, value in values.items())
    path.write_text("\n".join(lines) + "\n")
    logger.debug(f"Wrote {len(values)} variables to {path}")
    return path


def upsert_env_var(path: PathLike, key: str, value: str) -> None:
    """
    Set ``key`` in a ``.env`` file, replacing an existing ``KEY=`` line in place
    or appending a new one. The file is created when missing.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        path.touch()
    set_key(str(path), key, str(value), quote_mode="never")
    logger.debug(f"Set {key} in {path}")


def upsert_env_vars(path: PathLike, values: Mapping[str, str]) -> None:
    for key, value in values.items():
        upsert_env_var(path, key, value)


def backup_file(path: PathLike, suffix: str = ".backup") -> Optional[Path]:
    """Copy ``path`` next to itself with ``suffix`` appended, if it exists."""
    path = Path(path)
    if not path.exists():
        return None
    target = path.with_name(path.name + suffix)
    shutil.copyfile(path, target)
    return target
