import argparse
import logging
import sys
from pathlib import Path

from clipq import __version__
from clipq.clipboard import get_clipboard
from clipq.config import CONFIG_PATH, LOG_LEVEL, LOG_PATH, PREVIEW_LENGTH, Settings, load_settings, render_settings, save_settings
from clipq.errors import ClipqError, InvalidInput, NotFound
from clipq.plugins import PluginManager, Trigger
from clipq.storage import StorageManager
from clipq.utils import (
    calculate_hash,
    ensure_dirs,
    extract_emails,
    extract_phone_numbers,
    extract_urls,
    format_json,
    generate_password,
    truncate_text,
)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("clipq")


def open_storage(settings: Settings) -> StorageManager:
    ensure_dirs(settings.db_path)
    return StorageManager(settings.db_path)


def load_plugin_manager(settings: Settings) -> PluginManager:
    manager = PluginManager()
    manager.load_plugins(settings.plugins)
    return manager


def resolve_clip_id(storage: StorageManager, ref: str) -> str:
    """Turn a 1-based recency index or a literal clip id into a clip id."""
    if not ref.isdigit():
        return ref
    index = int(ref)
    clips = storage.recent(index)
    if 1 <= index <= len(clips):
        return clips[index - 1].id
    raise InvalidInput(f"Invalid clip index: {index}")


def cmd_daemon(args: argparse.Namespace, settings: Settings) -> int:
    ensure_dirs()
    logging.basicConfig(
        level=LOG_LEVEL,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
        force=True,
    )

    from clipq.daemon import Daemon

    daemon = Daemon(settings, max_clips=args.max_clips)
    daemon.run()
    return 0


def cmd_add(args: argparse.Namespace, settings: Settings) -> int:
    get_clipboard().write_text(args.text)
    with open_storage(settings) as storage:
        storage.insert_text(args.text)
        storage.trim(settings.max_clips)
    print(f"Added to clipboard: {args.text}")
    return 0


def cmd_pick(args: argparse.Namespace, settings: Settings) -> int:
    from clipq.picker import show_picker

    with open_storage(settings) as storage:
        if storage.count() == 0:
            print("No clipboard history found")
            return 0
        clip = show_picker(storage, args.limit, settings.picker_command)
    if clip is None:
        return 0
    get_clipboard().write_text(clip.content)
    load_plugin_manager(settings).trigger_plugins(Trigger.ON_CLIP_PICK, clip)
    print(f"Pasted: {clip.content}")
    return 0


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        clips = storage.recent(args.limit)
    for i, clip in enumerate(clips, start=1):
        print(f"{i}: {truncate_text(clip.content, PREVIEW_LENGTH)}")
    return 0


def cmd_clear(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        storage.clear()
    print("Clipboard history cleared")
    return 0


def cmd_config(args: argparse.Namespace, settings: Settings) -> int:
    config_path = Path(args.config).expanduser() if args.config else CONFIG_PATH
    if config_path.exists():
        print(f"Configuration loaded from: {config_path}")
        print(render_settings(settings), end="")
    else:
        print(f"No configuration file found at: {config_path}")
        print("Creating default configuration...")
        save_settings(Settings(), config_path)
        print(f"Default configuration saved to: {config_path}")
    return 0


def cmd_search(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        clips = storage.search(args.query, args.limit)
    if not clips:
        print(f"No clips found matching '{args.query}'")
        return 0

    plugins = load_plugin_manager(settings)
    print(f"Found {len(clips)} clips matching '{args.query}':")
    for i, clip in enumerate(clips, start=1):
        print(f"{i}: {truncate_text(clip.content, PREVIEW_LENGTH)}")
        plugins.trigger_plugins(Trigger.ON_CLIP_SEARCH, clip)
    return 0


def cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        stats = storage.statistics()

    def fmt(value) -> str:
        return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"

    print("Clipboard Statistics")
    print("===================")
    print(f"Total clips: {stats.total_clips}")
    print(f"Text clips: {stats.text_clips}")
    print(f"File clips: {stats.file_clips}")
    print(f"Oldest clip: {fmt(stats.oldest_clip)}")
    print(f"Newest clip: {fmt(stats.newest_clip)}")
    print(f"Database size: {stats.db_size_kb} KB")
    return 0


def cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    from clipq.transfer import export_clips

    with open_storage(settings) as storage:
        count = export_clips(storage, args.output, args.format)
    print(f"Exported {count} clips to {args.output}")
    return 0


def cmd_import(args: argparse.Namespace, settings: Settings) -> int:
    from clipq.transfer import import_clips

    with open_storage(settings) as storage:
        count = import_clips(storage, args.input, args.format)
        storage.trim(settings.max_clips)
    print(f"Imported {count} clips from {args.input}")
    return 0


def cmd_file(args: argparse.Namespace, settings: Settings) -> int:
    if not settings.enable_file_clips:
        raise InvalidInput("File clips are disabled (enable_file_clips = false)")
    path = Path(args.path).expanduser()
    if not path.exists():
        raise NotFound(f"File not found: {args.path}")
    abs_path = str(path.resolve())

    get_clipboard().write_text(abs_path)
    with open_storage(settings) as storage:
        storage.insert_file(abs_path)
        storage.trim(settings.max_clips)
    print(f"Added file to clipboard: {abs_path}")
    return 0


def cmd_tags(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        clips = storage.entries_for_tag(args.tag) if args.tag else storage.all()
        for i, clip in enumerate(clips, start=1):
            tags = sorted(storage.tags_for(clip.id))
            tag_str = f" [{', '.join(tags)}]" if tags else ""
            print(f"{i}: {truncate_text(clip.content, PREVIEW_LENGTH)}{tag_str}")
    return 0


def cmd_tag(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        clip_id = resolve_clip_id(storage, args.clip)
        storage.tag(clip_id, args.tag)
    print(f"Added tag '{args.tag}' to clip {clip_id}")
    return 0


def cmd_untag(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        clip_id = resolve_clip_id(storage, args.clip)
        storage.untag(clip_id, args.tag)
    print(f"Removed tag '{args.tag}' from clip {clip_id}")
    return 0


def cmd_backup(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        storage.backup(args.output)
    print(f"Database backed up to: {args.output}")
    return 0


def cmd_restore(args: argparse.Namespace, settings: Settings) -> int:
    with open_storage(settings) as storage:
        storage.restore(args.input)
    print(f"Database restored from: {args.input}")
    return 0


def cmd_plugins(args: argparse.Namespace, settings: Settings) -> int:
    print("Available Plugins:")
    print("==================")
    for plugin in load_plugin_manager(settings).list_plugins():
        status = "enabled" if plugin.enabled else "disabled"
        print(f"{plugin.name} - {Path(plugin.command).name} [{plugin.trigger.value}] ({status})")
    return 0


def cmd_plugin(args: argparse.Namespace, settings: Settings) -> int:
    output = load_plugin_manager(settings).execute_plugin(args.name, args.input)
    print(output, end="")
    return 0


def cmd_extract_urls(args: argparse.Namespace, settings: Settings) -> int:
    urls = extract_urls(args.text)
    if not urls:
        print("No URLs found in text")
        return 0
    print(f"Found {len(urls)} URLs:")
    for url in urls:
        print(f"  {url}")
    return 0


def cmd_extract_emails(args: argparse.Namespace, settings: Settings) -> int:
    emails = extract_emails(args.text)
    if not emails:
        print("No email addresses found in text")
        return 0
    print(f"Found {len(emails)} email addresses:")
    for email in emails:
        print(f"  {email}")
    return 0


def cmd_extract_phones(args: argparse.Namespace, settings: Settings) -> int:
    numbers = extract_phone_numbers(args.text)
    if not numbers:
        print("No phone numbers found in text")
        return 0
    print(f"Found {len(numbers)} phone numbers:")
    for number in numbers:
        print(f"  {number}")
    return 0


def cmd_format_json(args: argparse.Namespace, settings: Settings) -> int:
    print(format_json(args.text))
    return 0


def cmd_generate_password(args: argparse.Namespace, settings: Settings) -> int:
    print(f"Generated password: {generate_password(args.length)}")
    return 0


def cmd_hash(args: argparse.Namespace, settings: Settings) -> int:
    print(f"{args.algorithm} hash: {calculate_hash(args.text, args.algorithm)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    config_help = f"Configuration file (default: {CONFIG_PATH})"
    # SUPPRESS keeps a subcommand from resetting a --config given before it
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", default=argparse.SUPPRESS, help=config_help)

    parser = argparse.ArgumentParser(
        prog="clipq",
        description="clipq - Smart clipboard queue for power-users",
    )
    parser.add_argument("-c", "--config", default=None, help=config_help)
    parser.add_argument("--version", action="version", version=f"clipq {__version__}")
    sub = parser.add_subparsers(dest="command", required=True, metavar="command")

    def add(name: str, func, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text, parents=[common])
        p.set_defaults(func=func)
        return p

    p = add("daemon", cmd_daemon, "Run the clipboard daemon")
    p.add_argument("-m", "--max-clips", type=int, default=None, help="Maximum number of clips to keep in history")

    p = add("add", cmd_add, "Add text to clipboard and history")
    p.add_argument("text")

    p = add("pick", cmd_pick, "Pick and paste from history")
    p.add_argument("-l", "--limit", type=int, default=50)

    p = add("list", cmd_list, "List clipboard history")
    p.add_argument("-l", "--limit", type=int, default=20)

    add("clear", cmd_clear, "Clear clipboard history")
    add("config", cmd_config, "Show configuration")

    p = add("search", cmd_search, "Search clipboard history")
    p.add_argument("query")
    p.add_argument("-l", "--limit", type=int, default=20)

    add("stats", cmd_stats, "Show statistics")

    p = add("export", cmd_export, "Export clipboard history")
    p.add_argument("-o", "--output", default="clipboard_export.json")
    p.add_argument("-f", "--format", default="json", help="json, csv or txt")

    p = add("import", cmd_import, "Import clipboard history")
    p.add_argument("input")
    p.add_argument("-f", "--format", default="json", help="json, csv or txt")

    p = add("file", cmd_file, "Add file to clipboard")
    p.add_argument("path")

    p = add("tags", cmd_tags, "Show clipboard history with tags")
    p.add_argument("tag", nargs="?")

    p = add("tag", cmd_tag, "Add tag to a clip")
    p.add_argument("clip", help="Clip id or 1-based index")
    p.add_argument("tag")

    p = add("untag", cmd_untag, "Remove tag from a clip")
    p.add_argument("clip", help="Clip id or 1-based index")
    p.add_argument("tag")

    p = add("backup", cmd_backup, "Backup database")
    p.add_argument("-o", "--output", default="clipq_backup.db")

    p = add("restore", cmd_restore, "Restore database")
    p.add_argument("input")

    add("plugins", cmd_plugins, "List available plugins")

    p = add("plugin", cmd_plugin, "Execute a plugin")
    p.add_argument("name")
    p.add_argument("input")

    p = add("extract-urls", cmd_extract_urls, "Extract URLs from text")
    p.add_argument("text")

    p = add("extract-emails", cmd_extract_emails, "Extract email addresses from text")
    p.add_argument("text")

    p = add("extract-phones", cmd_extract_phones, "Extract phone numbers from text")
    p.add_argument("text")

    p = add("format-json", cmd_format_json, "Pretty-print JSON text")
    p.add_argument("text")

    p = add("generate-password", cmd_generate_password, "Generate password")
    p.add_argument("-l", "--length", type=int, default=16)

    p = add("hash", cmd_hash, "Calculate hash")
    p.add_argument("text")
    p.add_argument("-a", "--algorithm", default="sha256", help="sha256, sha1, md5 or default")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command != "daemon":
        logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, stream=sys.stderr)

    try:
        settings = load_settings(args.config)
        return args.func(args, settings)
    except (ClipqError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
