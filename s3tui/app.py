from __future__ import annotations

import argparse
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional, Sequence

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.widgets import DataTable, Header, Static

from .browser import Browser, Frame, Mode
from .config import LOG_LEVELS, AppConfig, configure_logging, load_config
from .entry import EntryKind, StorageEntry
from .events import EventMultiplexer, QueueKeySource
from .filesystem import FilesystemProvider
from .keys import Action, build_keymap, keys_for
from .objectstore import ObjectStoreProvider
from .provider import StorageProvider

ONE_MB = 1024**2
HUNDRED_MB = 100 * ONE_MB
ONE_GB = 1024**3
TEN_GB = 10 * ONE_GB

KEY_LABELS = {
    "up": "↑",
    "down": "↓",
    "left": "←",
    "right": "→",
    "escape": "esc",
    "backspace": "bksp",
}


def format_size(size: Optional[int]) -> str:
    if size is None:
        return ""
    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} PB"


def size_style(size: int) -> str:
    if size < ONE_MB:
        return "#8a8a8a"
    if size < HUNDRED_MB:
        return "#c7c7c7"
    if size < ONE_GB:
        return "#f0c674"
    if size < TEN_GB:
        return "#ff8c00"
    return "bold red"


def format_time(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return value.strftime("%Y-%m-%d %H:%M")


def row_icon(entry: StorageEntry) -> str:
    if entry.kind is EntryKind.DIRECTORY:
        return "📁"
    if entry.kind is EntryKind.UNKNOWN:
        return "⚠"
    return ""


def kind_label(entry: StorageEntry) -> str:
    if entry.kind is EntryKind.DIRECTORY:
        return "dir"
    if entry.kind is EntryKind.UNKNOWN:
        return "?"
    suffixes = PurePosixPath(entry.name).suffixes
    if suffixes and suffixes[-1].lower() == ".gz":
        suffixes = suffixes[:-1]
    if not suffixes:
        return "file"
    return suffixes[-1].lstrip(".").lower() or "file"


def status_text(frame: Frame) -> Text:
    if frame.mode is Mode.CONFIRMING_DELETE:
        return Text(frame.status, style="bold red")
    progress = frame.progress
    if frame.mode is Mode.TRANSFERRING and progress is not None:
        done = format_size(progress.done)
        if progress.fraction is None:
            return Text(f"{frame.status} {done}")
        total = format_size(progress.total)
        percent = int(progress.fraction * 100)
        return Text(f"{frame.status} {done} / {total} ({percent}%)")
    if frame.mode is Mode.LISTING:
        return Text("Loading...", style="italic")
    return Text(frame.status)


def key_hints(keymap: Mapping[str, Action], exit_keys: Sequence[str], transfer: str) -> str:
    labels = [
        (Action.MOVE_UP, "up"),
        (Action.MOVE_DOWN, "down"),
        (Action.ENTER, "open"),
        (Action.GO_UP, "parent"),
        (Action.TRANSFER, transfer.lower() or "copy"),
        (Action.DELETE, "delete"),
        (Action.SWITCH, "switch"),
        (Action.REFRESH, "refresh"),
    ]
    parts: list[str] = []
    for action, label in labels:
        keys = keys_for(keymap, action)
        if keys:
            parts.append(f"{KEY_LABELS.get(keys[0], keys[0])} {label}")
    if exit_keys:
        parts.append(f"{KEY_LABELS.get(exit_keys[0], exit_keys[0])} quit")
    return "  ".join(parts)


class EntryTable(DataTable, can_focus=False):
    pass


class S3TuiApp(App):
    CSS = """
    #path-bar {
        height: 3;
        padding: 0 1;
        border: round $panel;
        background: $surface;
        color: $text;
        content-align: left middle;
    }

    #entries {
        height: 1fr;
        border: round $panel;
        scrollbar-gutter: stable;
    }

    #status {
        height: 1;
        padding: 0 1;
        background: $surface;
        color: $text;
    }

    #key-hints {
        height: 1;
        padding: 0 1;
        background: $panel;
        color: $text-muted;
    }
    """

    TITLE = "s3tui"

    def __init__(
        self,
        providers: Sequence[StorageProvider],
        tick_rate: float = 0.2,
        exit_keys: Sequence[str] = ("escape",),
        keymap: Optional[Mapping[str, Action]] = None,
    ) -> None:
        super().__init__()
        self.key_source = QueueKeySource()
        self.exit_keys = list(exit_keys)
        self.multiplexer = EventMultiplexer(
            self.key_source, tick_rate=tick_rate, exit_keys=self.exit_keys
        )
        self.keymap = dict(keymap or build_keymap())
        self.browser = Browser(
            providers, render=self.draw, on_shutdown=self.exit, keymap=self.keymap
        )
        self.last_frame: Optional[Frame] = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static("", id="path-bar")
        yield EntryTable(id="entries")
        yield Static("", id="status")
        yield Static("", id="key-hints")

    def on_mount(self) -> None:
        self.path_bar = self.query_one("#path-bar", Static)
        self.table = self.query_one("#entries", EntryTable)
        self.status_bar = self.query_one("#status", Static)
        self.hints = self.query_one("#key-hints", Static)
        self.table.cursor_type = "row"
        self.table.zebra_stripes = True
        self.table.add_column("", width=2)
        self.table.add_columns("Name", "Kind", "Size", "Modified", "Class")
        channel = self.multiplexer.start()
        self.run_worker(self.browser.run(channel), exclusive=True, name="browser")

    def on_unmount(self) -> None:
        self.multiplexer.channel.close()
        self.multiplexer.stop(timeout=1.0)

    def on_key(self, event: events.Key) -> None:
        self.key_source.push(event.key)
        event.stop()
        event.prevent_default()

    def draw(self, frame: Frame) -> None:
        self.last_frame = frame
        self.sub_title = frame.title
        self.path_bar.update(Text(f"{frame.title}  {frame.location or '/'}"))
        self.table.clear()
        for entry in frame.entries:
            self.table.add_row(
                row_icon(entry),
                Text(entry.name, style="bold" if entry.is_dir else ""),
                kind_label(entry),
                self._size_cell(entry),
                format_time(entry.last_modified),
                entry.storage_class or "",
            )
        if frame.entries:
            self.table.move_cursor(row=frame.selected, animate=False)
        self.status_bar.update(status_text(frame))
        self.hints.update(key_hints(self.keymap, self.exit_keys, frame.transfer_label))

    def _size_cell(self, entry: StorageEntry) -> Text:
        if entry.size is None:
            return Text("")
        return Text(format_size(entry.size), style=size_style(entry.size), justify="right")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Browse and copy files between a local directory and an S3 bucket"
    )
    parser.add_argument("bucket", nargs="?", help="S3 bucket to browse")
    parser.add_argument("--bucket", dest="bucket_option", help="S3 bucket to browse")
    parser.add_argument("--region", help="AWS region override for the S3 client")
    parser.add_argument("-p", "--profile", help="AWS profile to use")
    parser.add_argument("--root", help="Local directory to start in")
    parser.add_argument(
        "--tick-ms", type=int, help="Redraw tick interval in milliseconds"
    )
    parser.add_argument(
        "--config", help="Path to a JSON config file (default: ~/.config/s3tui/config.json)"
    )
    parser.add_argument("--log-file", help="Write logs to this file")
    parser.add_argument(
        "--log-level", choices=LOG_LEVELS, type=str.upper, help="Log level"
    )
    return parser


def _merge_args(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    values = {
        "bucket": args.bucket_option or args.bucket or config.bucket,
        "region": args.region or config.region,
        "profile": args.profile or config.profile,
        "root": args.root or config.root,
        "log_file": args.log_file or config.log_file,
        "log_level": args.log_level or config.log_level,
        "tick_rate": config.tick_rate,
    }
    if args.tick_ms is not None and args.tick_ms > 0:
        values["tick_rate"] = args.tick_ms / 1000.0
    return AppConfig(
        exit_keys=config.exit_keys,
        keymap=config.keymap,
        **values,
    )


def _build_providers(config: AppConfig) -> list[StorageProvider]:
    return [
        ObjectStoreProvider(config.bucket, region=config.region, profile=config.profile),
        FilesystemProvider(config.root),
    ]


def _run_browser_command(config: AppConfig) -> int:
    configure_logging(config)
    app = S3TuiApp(
        _build_providers(config),
        tick_rate=config.tick_rate,
        exit_keys=config.exit_keys,
        keymap=build_keymap(config.keymap),
    )
    try:
        app.run()
    finally:
        app.multiplexer.stop(timeout=1.0)
    return app.return_code or 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config_path = Path(args.config).expanduser() if args.config else None
    config = _merge_args(load_config(config_path), args)
    if not config.bucket:
        parser.error("a bucket is required (argument, --bucket or config file)")
    return _run_browser_command(config)


if __name__ == "__main__":
    raise SystemExit(main())
