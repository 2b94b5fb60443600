"""
Generator configuration.

Values are layered: constants, then config.toml next to this module, then
environment variables (a .env file at the project root is honoured), then
explicit overrides from the command line.
"""

import os
import shlex
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from tsume.constants import (
    ENGINE_COMMAND,
    VARIANTS_INI_PATH,
    VARIANT_NAME,
    STARTING_SFEN,
    MAX_MOVES,
    MULTIPV_K,
    SEARCH_TIME_MS,
    MAX_ATTEMPTS,
    REPETITION_LIMIT,
    SEARCH_GRACE_MS,
    STARTUP_TIMEOUT_S,
    STARTUP_MAX_LINES,
)

# Load environment variables
load_dotenv(Path(__file__).parent.parent / '.env')

CONFIG_FILE = Path(__file__).parent / 'config.toml'


@dataclass(frozen=True)
class GeneratorConfig:
    """Everything a worker needs; plain values only so it pickles across processes."""
    engine_command: tuple[str, ...] = (ENGINE_COMMAND,)
    variants_path: Optional[str] = VARIANTS_INI_PATH
    engine_options: dict = field(default_factory=lambda: {
        "UCI_Variant": VARIANT_NAME,
        "MultiPV": MULTIPV_K,
    })
    start_sfen: str = STARTING_SFEN
    search_time_ms: int = SEARCH_TIME_MS
    multipv_k: int = MULTIPV_K
    max_moves: int = MAX_MOVES
    max_attempts: int = MAX_ATTEMPTS
    repetition_limit: int = REPETITION_LIMIT
    grace_ms: int = SEARCH_GRACE_MS
    startup_timeout_s: float = STARTUP_TIMEOUT_S
    startup_max_lines: int = STARTUP_MAX_LINES
    verify: bool = False
    debug: bool = False

    def engine_argv(self) -> list[str]:
        """Command line used to spawn the engine."""
        argv = list(self.engine_command)
        if self.variants_path:
            argv += ["load", self.variants_path]
        return argv


def load_settings(config_file: Path = CONFIG_FILE) -> dict:
    """Load the TOML settings file, or an empty dict if it does not exist."""
    if not config_file.exists():
        return {}
    with open(config_file, 'rb') as f:
        return tomllib.load(f)


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(config_file: Path = CONFIG_FILE, **overrides) -> GeneratorConfig:
    """
    Build a GeneratorConfig from config.toml, the environment and overrides.

    Overrides set to None are ignored so argparse defaults can be passed
    straight through.
    """
    settings = load_settings(config_file)
    engine = settings.get("engine", {})
    generator = settings.get("generator", {})

    values = {}
    if "command" in engine:
        values["engine_command"] = tuple(shlex.split(engine["command"]))
    if "variants" in engine:
        values["variants_path"] = engine["variants"] or None
    if "options" in engine:
        values["engine_options"] = dict(engine["options"])
    for key in ("search_time_ms", "max_moves", "max_attempts", "multipv_k",
                "repetition_limit", "grace_ms", "start_sfen"):
        if key in generator:
            values[key] = generator[key]

    # Environment overrides
    if os.environ.get("TSUME_ENGINE"):
        values["engine_command"] = tuple(shlex.split(os.environ["TSUME_ENGINE"]))
    if os.environ.get("TSUME_VARIANTS_INI"):
        values["variants_path"] = os.environ["TSUME_VARIANTS_INI"]
    if os.environ.get("TSUME_SEARCH_TIME_MS"):
        values["search_time_ms"] = int(os.environ["TSUME_SEARCH_TIME_MS"])
    debug = _env_flag("TSUME_DEBUG")
    if debug is not None:
        values["debug"] = debug

    for key, value in overrides.items():
        if value is None:
            continue
        if key == "engine_command":
            value = tuple(shlex.split(value)) if isinstance(value, str) else tuple(value)
        values[key] = value

    config = GeneratorConfig(**values)

    # MultiPV width follows the engine option unless given explicitly
    if "multipv_k" not in values and "MultiPV" in config.engine_options:
        config = replace(config, multipv_k=int(config.engine_options["MultiPV"]))
    return config
