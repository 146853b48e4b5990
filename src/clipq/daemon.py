import logging
import signal
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from clipq.clipboard import ClipboardAccessor, get_clipboard
from clipq.config import MAX_PENDING_PLUGIN_EVENTS, POLL_INTERVAL, Settings
from clipq.models import Clip
from clipq.monitor import ClipboardMonitor
from clipq.plugins import PluginManager, Trigger
from clipq.storage import StorageManager
from clipq.utils import ensure_dirs

logger = logging.getLogger(__name__)


class Daemon:
    """Long-running clipboard recorder.

    Plugins subscribed to new clips run on a single worker thread, so a slow
    plugin delays later notifications but never the next clipboard poll. At
    most ``max_pending`` notifications wait at a time; further clips are still
    recorded but their notification is dropped.
    """

    def __init__(
        self,
        settings: Settings,
        max_clips: int | None = None,
        storage: StorageManager | None = None,
        clipboard: ClipboardAccessor | None = None,
        plugins: PluginManager | None = None,
        max_pending: int = MAX_PENDING_PLUGIN_EVENTS,
    ):
        self._settings = settings
        self.max_clips = max_clips if max_clips is not None else settings.max_clips
        if storage is None:
            ensure_dirs(settings.db_path)
            storage = StorageManager(settings.db_path)
        self._storage = storage
        self._clipboard = clipboard or get_clipboard()
        if plugins is None:
            plugins = PluginManager()
            plugins.load_plugins(settings.plugins)
        self._plugins = plugins
        self._notifier = ThreadPoolExecutor(max_workers=1, thread_name_prefix="clipq-plugins")
        self._max_pending = max_pending
        self._pending = threading.BoundedSemaphore(max_pending)
        self._stop_event = threading.Event()
        self._monitor = ClipboardMonitor(
            self._storage,
            self._clipboard,
            max_clips=self.max_clips,
            on_change=self._on_clip_added,
        )

    @property
    def monitor(self) -> ClipboardMonitor:
        return self._monitor

    def _on_clip_added(self, clip: Clip) -> None:
        if not self._pending.acquire(blocking=False):
            logger.warning(
                "Plugin backlog full (%d pending), skipping notification for clip %s", self._max_pending, clip.id
            )
            return
        future = self._notifier.submit(self._plugins.trigger_plugins, Trigger.ON_CLIP_ADD, clip)
        future.add_done_callback(self._notification_done)

    def _notification_done(self, future: Future) -> None:
        self._pending.release()
        error = future.exception()
        if error is not None:
            logger.error("Clip-added notification failed: %s", error)

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum, _frame) -> None:
        logger.info("Received %s, finishing current poll", signal.Signals(signum).name)
        self.stop()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self, interval: float = POLL_INTERVAL) -> None:
        logger.info("Starting clipq daemon with max_clips=%d", self.max_clips)
        logger.info("Hotkey support is disabled; use 'clipq pick' instead")
        self._install_signal_handlers()
        self._plugins.trigger_plugins(Trigger.ON_DAEMON_START)
        try:
            self._monitor.run(self._stop_event, interval=interval)
        finally:
            self._notifier.shutdown(wait=True)
            self._plugins.trigger_plugins(Trigger.ON_DAEMON_STOP)
            self._storage.close()
            logger.info("clipq daemon stopped")
