"""Interactive selection through an external fuzzy finder (fzf or skim)."""

import logging
import shutil
import subprocess

from clipq.config import PICKER_PREVIEW_LENGTH
from clipq.errors import ClipqError, NotFound
from clipq.models import Clip
from clipq.storage import StorageManager
from clipq.utils import truncate_text

logger = logging.getLogger(__name__)

KNOWN_PICKERS = ("fzf", "sk", "skim")
PICKER_ARGS = ["--height", "40%", "--reverse", "--border"]
# fzf and skim exit 1 for "no match" and 130 when the user aborts
CANCEL_EXIT_CODES = {1, 130}


def find_picker_command(preferred: str | None = None) -> str:
    candidates = [preferred] if preferred else []
    candidates += [c for c in KNOWN_PICKERS if c != preferred]
    for candidate in candidates:
        path = shutil.which(candidate)
        if path:
            return path
    raise NotFound(
        "No fuzzy picker found. Please install 'fzf' or 'skim' (sk).\n"
        "Install fzf: https://github.com/junegunn/fzf\n"
        "Install skim: https://github.com/lotabout/skim"
    )


def format_listing(clips: list[Clip]) -> str:
    return "\n".join(
        f"{i}: {truncate_text(clip.content, PICKER_PREVIEW_LENGTH)}" for i, clip in enumerate(clips, start=1)
    )


def parse_selection(line: str, clips: list[Clip]) -> Clip | None:
    index_str, sep, _ = line.strip().partition(":")
    if not sep:
        return None
    try:
        index = int(index_str)
    except ValueError:
        return None
    if 1 <= index <= len(clips):
        return clips[index - 1]
    return None


def run_picker(command: str, listing: str) -> str | None:
    try:
        result = subprocess.run(
            [command, *PICKER_ARGS],
            input=listing,
            stdout=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        raise NotFound(f"Picker command could not be started: {command}", e) from e

    if result.returncode in CANCEL_EXIT_CODES:
        return None
    if result.returncode != 0:
        raise ClipqError(f"Picker command failed with exit status {result.returncode}")
    selected = result.stdout.strip()
    return selected or None


def show_picker(storage: StorageManager, limit: int = 50, preferred: str | None = None) -> Clip | None:
    clips = storage.recent(limit)
    if not clips:
        return None
    command = find_picker_command(preferred)
    selected = run_picker(command, format_listing(clips))
    if selected is None:
        logger.debug("Picker cancelled")
        return None
    return parse_selection(selected, clips)
