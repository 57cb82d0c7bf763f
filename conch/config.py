"""Shell configuration from [tool.conch] in pyproject.toml and .conch.toml."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from conch.exceptions import ConchConfigError

logger = logging.getLogger(__name__)

STATE_DIR = ".conch"


class ConchConfig(BaseModel):
    """Settings for the shell and its completer."""

    model_config = ConfigDict(extra="forbid")

    autoload_modules: bool = True
    """Import a module when its name is typed, so attributes complete."""

    module_dir: str | None = "__pypackages__"
    """Directory under the cwd searched for typed module names before
    sys.path. None or "" searches sys.path only; the cwd itself is never searched."""

    complete_while_typing: bool = False
    debug_log: bool = False
    history_file: str | None = f"{STATE_DIR}/history"


def _read_toml(path: Path) -> dict:
    try:
        return tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as e:
        raise ConchConfigError(f"Invalid TOML in {path}: {e}", cause=e)


def load_config(root: Path) -> ConchConfig:
    """Merge [tool.conch] from pyproject.toml with .conch.toml (which wins)."""
    data: dict = {}
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        data.update(_read_toml(pyproject).get("tool", {}).get("conch", {}))
    local = root / ".conch.toml"
    if local.is_file():
        data.update(_read_toml(local))
    try:
        config = ConchConfig.model_validate(data)
    except ValidationError as e:
        raise ConchConfigError(f"Invalid conch configuration: {e}", cause=e)
    logger.debug("loaded config from %s: %s", root, config)
    return config


def enable_debug_log(log_dir: Path | None = None) -> logging.FileHandler:
    """Attach a FileHandler for the conch loggers writing .conch/debug.log."""
    log_path = (log_dir or Path.cwd() / STATE_DIR) / "debug.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(log_path))
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    ))
    conch_logger = logging.getLogger("conch")
    conch_logger.addHandler(handler)
    conch_logger.setLevel(logging.DEBUG)
    return handler


def disable_debug_log(handler: logging.FileHandler) -> None:
    """Close and remove a handler added by enable_debug_log()."""
    logging.getLogger("conch").removeHandler(handler)
    handler.close()
