"""Session configuration discovery.

Configuration is always supplied externally: ``[tool.quorum]`` in the
repository's ``pyproject.toml``, the top level of ``quorum.toml``, or an
explicit file, with CLI overrides applied on top.

Example ``quorum.toml``::

    foci = ["correctness", "security", "performance"]
    task_timeout_seconds = 120
    session_timeout_seconds = 300
    context_timeout_seconds = 10
    similarity_threshold = 0.85
    post_max_attempts = 3
    post_backoff_seconds = 2.0
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import pydantic as pd

from quorum.review.contracts import SessionConfig
from quorum.review.errors import ConfigError

logger = logging.getLogger(__name__)

PYPROJECT_FILE = "pyproject.toml"
QUORUM_FILE = "quorum.toml"


def _read_toml(config_path: Path) -> Dict[str, Any]:
    try:
        with open(config_path, "rb") as f:
            content = tomllib.load(f)
        logger.debug(f"Parsed config from {config_path}")
        return content
    except (IOError, OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to parse {config_path}: {e}") from e


def discover_config_table(repo_root: Path, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Find the raw quorum settings for a repository.

    Args:
        repo_root: Repository root directory
        config_path: Explicit config file; its ``[tool.quorum]`` table is used
            when present, otherwise its top level

    Returns:
        Raw settings, or an empty dict if nothing was found
    """
    if config_path is not None:
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        content = _read_toml(config_path)
        return content.get("tool", {}).get("quorum", content)

    repo_root = Path(repo_root).resolve()

    quorum_toml = repo_root / QUORUM_FILE
    if quorum_toml.is_file():
        return _read_toml(quorum_toml)

    pyproject = repo_root / PYPROJECT_FILE
    if pyproject.is_file():
        table = _read_toml(pyproject).get("tool", {}).get("quorum")
        if table is not None:
            return table

    logger.debug(f"No quorum configuration found under {repo_root}")
    return {}


def load_session_config(
    repo_root: Path,
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SessionConfig:
    """Load and validate session configuration.

    Args:
        repo_root: Repository root directory
        config_path: Optional explicit config file
        overrides: Values that replace file settings; None values are ignored

    Returns:
        Validated SessionConfig

    Raises:
        ConfigError: If settings are missing or invalid
    """
    settings = dict(discover_config_table(repo_root, config_path))
    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = value

    try:
        return SessionConfig.model_validate(settings)
    except pd.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid session configuration: {problems}") from e
