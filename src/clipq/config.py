import logging
import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

from clipq.errors import InvalidInput

logger = logging.getLogger(__name__)

DATA_DIR = Path(os.environ.get("CLIPQ_HOME", Path.home() / ".clipq"))
DB_PATH = DATA_DIR / "clipboard.db"
LOG_PATH = DATA_DIR / "clipq.log"
CONFIG_PATH = Path(os.environ.get("CLIPQ_CONFIG", Path.home() / ".clipq.toml"))

POLL_INTERVAL = 0.5  # seconds between clipboard checks
DEFAULT_MAX_CLIPS = 100
PREVIEW_LENGTH = 80  # characters shown by list/search
PICKER_PREVIEW_LENGTH = 100
PLUGIN_TIMEOUT = 10.0  # seconds a plugin may run before it is killed
MAX_PENDING_PLUGIN_EVENTS = 100  # queued clip-added notifications before new ones are dropped


def _parse_log_level() -> int:
    raw = os.environ.get("CLIPQ_LOG_LEVEL")
    if raw is None:
        return logging.INFO
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        return logging.INFO
    return level


LOG_LEVEL = _parse_log_level()


@dataclass
class Settings:
    max_clips: int = DEFAULT_MAX_CLIPS
    hotkey: str = "ctrl+shift+v"  # not bound yet
    picker_command: str = "fzf"
    database_path: str = str(DB_PATH)
    enable_file_clips: bool = True
    enable_encryption: bool = False  # not implemented
    sync_enabled: bool = False  # not implemented
    sync_gist_id: str | None = None
    sync_token: str | None = None
    plugins: list[dict] = field(default_factory=list)

    @property
    def db_path(self) -> Path:
        return Path(self.database_path).expanduser()


_BOOL_KEYS = {"enable_file_clips", "enable_encryption", "sync_enabled"}
_STR_KEYS = {"hotkey", "picker_command", "database_path"}
_OPTIONAL_STR_KEYS = {"sync_gist_id", "sync_token"}


def _validate(key: str, value):
    if key == "max_clips":
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidInput(f"max_clips must be a non-negative integer, got {value!r}")
    elif key in _BOOL_KEYS:
        if not isinstance(value, bool):
            raise InvalidInput(f"{key} must be true or false, got {value!r}")
    elif key in _STR_KEYS:
        if not isinstance(value, str) or not value:
            raise InvalidInput(f"{key} must be a non-empty string, got {value!r}")
    elif key in _OPTIONAL_STR_KEYS:
        if not isinstance(value, str):
            raise InvalidInput(f"{key} must be a string, got {value!r}")
    elif key == "plugins":
        if not isinstance(value, list) or not all(isinstance(p, dict) for p in value):
            raise InvalidInput("plugins must be an array of tables ([[plugins]])")
    return value


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a TOML file.

    A missing file yields the built-in defaults. Keys present in the file
    override the defaults; unknown keys are logged and ignored.
    """
    config_path = Path(path).expanduser() if path else CONFIG_PATH
    if not config_path.exists():
        return Settings()

    try:
        with config_path.open("rb") as fh:
            raw = tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise InvalidInput(f"Invalid config file {config_path}", e) from e

    known = {f.name for f in fields(Settings)}
    values = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Ignoring unknown config option %r in %s", key, config_path)
            continue
        values[key] = _validate(key, value)
    return Settings(**values)


def _toml_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_settings(settings: Settings) -> str:
    """Render settings as a TOML document."""
    lines = ["# clipq configuration"]
    for f in fields(Settings):
        if f.name == "plugins":
            continue
        value = getattr(settings, f.name)
        if value is None:
            lines.append(f"# {f.name} = \"\"")
        else:
            lines.append(f"{f.name} = {_toml_value(value)}")

    for plugin in settings.plugins:
        lines.append("")
        lines.append("[[plugins]]")
        for key, value in plugin.items():
            if isinstance(value, list):
                rendered = ", ".join(_toml_value(v) for v in value)
                lines.append(f"{key} = [{rendered}]")
            else:
                lines.append(f"{key} = {_toml_value(value)}")
    return "\n".join(lines) + "\n"


def save_settings(settings: Settings, path: str | Path | None = None) -> Path:
    config_path = Path(path).expanduser() if path else CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(render_settings(settings))
    return config_path
