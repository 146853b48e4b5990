import logging
import subprocess
import sys
from dataclasses import dataclass, field, replace
from enum import Enum

from clipq.config import PLUGIN_TIMEOUT
from clipq.errors import InvalidInput, PluginDisabled, PluginExecutionFailed, PluginNotFound
from clipq.models import Clip

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    ON_CLIP_ADD = "on_clip_add"
    ON_CLIP_SEARCH = "on_clip_search"
    ON_CLIP_PICK = "on_clip_pick"
    ON_DAEMON_START = "on_daemon_start"
    ON_DAEMON_STOP = "on_daemon_stop"
    MANUAL = "manual"


@dataclass
class PluginConfig:
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    enabled: bool = True
    trigger: Trigger = Trigger.MANUAL

    @classmethod
    def from_dict(cls, data: dict) -> "PluginConfig":
        """Build a plugin from a ``[[plugins]]`` table of the config file."""
        try:
            name = data["name"]
            command = data["command"]
        except KeyError as e:
            raise InvalidInput(f"Plugin entry is missing {e.args[0]!r}") from e
        args = data.get("args", [])
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise InvalidInput(f"Plugin {name!r}: args must be a list of strings")
        try:
            trigger = Trigger(data.get("trigger", Trigger.MANUAL.value))
        except ValueError as e:
            choices = ", ".join(t.value for t in Trigger)
            raise InvalidInput(f"Plugin {name!r}: unknown trigger {data.get('trigger')!r} (use {choices})") from e
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise InvalidInput(f"Plugin {name!r}: enabled must be true or false, got {enabled!r}")
        return cls(name=name, command=command, args=args, enabled=enabled, trigger=trigger)


BUILTIN_PLUGINS = [
    PluginConfig(
        name="url_extractor",
        command=sys.executable,
        args=["-c", "import re, sys; print('\\n'.join(re.findall(r'https?://[^\\s]+', sys.stdin.read())))"],
        trigger=Trigger.ON_CLIP_ADD,
    ),
    PluginConfig(
        name="code_formatter",
        command=sys.executable,
        args=["-c", "import json, sys; data=json.loads(sys.stdin.read()); print(json.dumps(data, indent=2))"],
        trigger=Trigger.ON_CLIP_ADD,
    ),
    PluginConfig(
        name="password_generator",
        command=sys.executable,
        args=[
            "-c",
            "import secrets, string; print(''.join(secrets.choice(string.ascii_letters + string.digits) for _ in range(16)))",
        ],
        trigger=Trigger.MANUAL,
    ),
]


class PluginManager:
    """Registry of external handlers, keyed by name."""

    def __init__(self, timeout: float = PLUGIN_TIMEOUT):
        self._plugins: dict[str, PluginConfig] = {}
        self._timeout = timeout

    def load_plugins(self, extra: list[dict] | None = None) -> None:
        for plugin in BUILTIN_PLUGINS:
            self.add_plugin(replace(plugin, args=list(plugin.args)))
        for data in extra or []:
            self.add_plugin(PluginConfig.from_dict(data))

    def add_plugin(self, plugin: PluginConfig) -> None:
        self._plugins[plugin.name] = plugin

    def get_plugin(self, name: str) -> PluginConfig:
        plugin = self._plugins.get(name)
        if plugin is None:
            raise PluginNotFound(f"Plugin not found: {name}")
        return plugin

    def list_plugins(self) -> list[PluginConfig]:
        return sorted(self._plugins.values(), key=lambda p: p.name)

    def enable_plugin(self, name: str) -> None:
        self.get_plugin(name).enabled = True

    def disable_plugin(self, name: str) -> None:
        self.get_plugin(name).enabled = False

    def execute_plugin(self, name: str, input_text: str) -> str:
        """Run a plugin with ``input_text`` on stdin and return its stdout."""
        plugin = self.get_plugin(name)
        if not plugin.enabled:
            raise PluginDisabled(f"Plugin is disabled: {name}")
        return self._run(plugin, input_text)

    def _run(self, plugin: PluginConfig, input_text: str) -> str:
        try:
            result = subprocess.run(
                [plugin.command, *plugin.args],
                input=input_text,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise PluginExecutionFailed(f"Plugin {plugin.name} timed out after {self._timeout}s", original_error=e) from e
        except OSError as e:
            raise PluginExecutionFailed(f"Plugin {plugin.name} could not be started", original_error=e) from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise PluginExecutionFailed(
                f"Plugin execution failed: {stderr or f'exit status {result.returncode}'}",
                stderr=stderr,
            )
        return result.stdout

    def trigger_plugins(self, trigger: Trigger, clip: Clip | None = None) -> dict[str, str]:
        """Run every enabled plugin subscribed to ``trigger``.

        The clip content is piped to each plugin; daemon start/stop events
        carry no clip and send empty input.

        Failures are logged per plugin and never propagate. Returns the
        output of the plugins that succeeded.
        """
        if trigger == Trigger.MANUAL:
            return {}
        outputs: dict[str, str] = {}
        for plugin in self.list_plugins():
            if not plugin.enabled or plugin.trigger != trigger:
                continue
            try:
                outputs[plugin.name] = self._run(plugin, clip.content if clip else "")
            except PluginExecutionFailed as e:
                logger.warning("Plugin %s failed: %s", plugin.name, e)
        return outputs
