"""Quill CLI: main application entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

if TYPE_CHECKING:
    from quill.engine.config import EngineConfig

logger = logging.getLogger(__name__)

LOG_DIR = Path.home() / ".quill" / "logs"


def _configure_logging(level: str, verbose: bool = False) -> Path:
    """Log to a rotating file under ~/.quill/logs and to stderr."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "quill.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    # Keep the terminal quiet unless asked; the file gets everything.
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    return log_file


def _load_config(args) -> EngineConfig:
    from quill.engine.config import EngineConfig
    from quill.engine.yaml_config import load_yaml_config

    if args.config:
        config = load_yaml_config(args.config).engine
    else:
        config = EngineConfig.from_env()
    if args.vault:
        config.vault_root = args.vault
    return config


def read_deltas(path: Path) -> Iterator[Any]:
    """Parse a JSON-lines delta recording. Blank lines are skipped."""
    from quill.adapters.events import dict_to_delta

    with path.open(encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{lineno}: invalid JSON ({exc.msg})") from exc
            if not isinstance(data, dict):
                raise ValueError(f"{path}:{lineno}: expected a JSON object")
            yield dict_to_delta(data)


class ConsoleRenderer:
    """Transcript listener printing settled messages and asking for decisions."""

    def __init__(self, console: Console, interactive: bool) -> None:
        self.console = console
        self.interactive = interactive
        self._printed: set[str] = set()
        self._asked: set[str] = set()
        self._prompt_lock = asyncio.Lock()
        self._tasks: list[asyncio.Task] = []

    def __call__(self, message) -> None:
        from quill.shared.models.message import ToolMessage

        if isinstance(message, ToolMessage) and message.awaiting_decision:
            if message.id not in self._asked and (
                self.interactive or message.role.value == "question"
            ):
                self._asked.add(message.id)
                self._tasks.append(asyncio.ensure_future(self._ask(message)))
            return
        if message.is_streaming or message.id in self._printed:
            return
        self._printed.add(message.id)
        self.console.print(message.render())

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def _ask(self, message) -> None:
        from quill.shared.models.message import QuestionMessage

        async with self._prompt_lock:
            if not message.awaiting_decision:
                return
            if isinstance(message, QuestionMessage):
                answer = await self._ask_question(message)
                message.answer_with(answer)
                return
            self.console.print(message.render())
            approved = await asyncio.to_thread(
                Confirm.ask, f"Apply {message.tool_name}?", console=self.console
            )
            if approved:
                message.apply()
            else:
                message.reject()

    async def _ask_question(self, message) -> str:
        if not self.interactive:
            return message.options[0] if message.options else ""
        self.console.print(message.render())
        answer = await asyncio.to_thread(
            Prompt.ask, "Answer", console=self.console
        )
        # A bare number picks the matching option.
        if answer.isdigit() and 1 <= int(answer) <= len(message.options):
            return message.options[int(answer) - 1]
        return answer


async def _replay(args, config) -> int:
    from quill.engine.context import AgentContext
    from quill.engine.engine import ConversationEngine
    from quill.engine.approval import ApprovalPolicy
    from quill.engine.models import Decision
    from quill.adapters.permission_store import PermissionStore

    default_decision = None
    if args.auto_approve:
        default_decision = Decision.APPLY
    elif args.auto_reject:
        default_decision = Decision.REJECT

    vault = Path(config.vault_root).expanduser()
    policy = ApprovalPolicy(
        always_allow=set(config.auto_approve_tools),
        permission_store=PermissionStore(project_dir=vault / ".quill"),
        default_decision=default_decision,
    )
    context = AgentContext.create(config, approval_policy=policy)
    console = Console()
    renderer = ConsoleRenderer(console, interactive=default_decision is None)
    unsubscribe = context.transcript.subscribe(renderer)

    engine = ConversationEngine(context)
    if args.prompt:
        engine.add_user_message(args.prompt)
    try:
        entries = await engine.run_turn(read_deltas(Path(args.deltas)))
        await renderer.drain()
    finally:
        unsubscribe()

    if args.print_transcript:
        console.print_json(json.dumps(entries, ensure_ascii=False))
    return 0


def _snapshots(args, config) -> int:
    from quill.shared.services.snapshot import SnapshotStore
    from quill.shared.services.vault import LocalVaultStore

    store = LocalVaultStore(Path(config.vault_root).expanduser())
    snapshots = SnapshotStore(store, config.resolved_snapshot_dir())
    console = Console()

    if args.snapshot_command == "list":
        records = snapshots.list_snapshots()
        if not records:
            console.print("No snapshots.")
            return 0
        table = Table("id", "path", "existed", "created")
        for snap in records:
            table.add_row(
                snap.snapshot_id,
                snap.resource_path or "[dim]?[/dim]",
                "yes" if snap.existed else "no",
                snap.created_at,
            )
        console.print(table)
        return 0

    if args.snapshot_command == "restore":
        restored = asyncio.run(snapshots.restore_snapshot(args.snapshot_id, args.path or ""))
        if not restored:
            console.print(
                f"[red]Snapshot {args.snapshot_id} not restored: "
                "not found or no note path given[/red]"
            )
            return 1
        console.print(f"Restored {args.path or 'note'} from {args.snapshot_id}")
        return 0

    if args.snapshot_command == "delete":
        removed = snapshots.delete_snapshot(args.snapshot_id)
        console.print("Deleted." if removed else "Nothing to delete.")
        return 0

    if args.snapshot_command == "prune":
        removed = snapshots.prune(args.keep or [])
        console.print(f"Pruned {removed} snapshot(s).")
        return 0

    return 2


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="quill",
        description="Quill: approval-gated tool orchestration for a note vault",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        help="YAML config file (engine, tools, list, artifacts, web_search)",
    )
    parser.add_argument(
        "--vault", metavar="DIR",
        help="Vault root directory (overrides config and QUILL_VAULT_ROOT)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Debug logging, also echoed to stderr",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser(
        "replay", help="Run one turn from a recorded JSON-lines delta stream",
    )
    replay.add_argument("deltas", metavar="DELTAS.jsonl")
    replay.add_argument(
        "--prompt", metavar="TEXT",
        help="User message to record before the turn",
    )
    mode = replay.add_mutually_exclusive_group()
    mode.add_argument(
        "--auto-approve", action="store_true",
        help="Apply every gated tool call without asking",
    )
    mode.add_argument(
        "--auto-reject", action="store_true",
        help="Reject every gated tool call without asking",
    )
    replay.add_argument(
        "--print-transcript", action="store_true",
        help="Print the model-facing transcript for the next turn",
    )

    snaps = sub.add_parser("snapshots", help="Inspect and restore note snapshots")
    snap_sub = snaps.add_subparsers(dest="snapshot_command", required=True)
    snap_sub.add_parser("list", help="List stored snapshots")
    restore = snap_sub.add_parser("restore", help="Restore a note from a snapshot")
    restore.add_argument("snapshot_id")
    restore.add_argument(
        "path", nargs="?",
        help="Vault path to restore (defaults to the recorded path)",
    )
    delete = snap_sub.add_parser("delete", help="Delete a snapshot")
    delete.add_argument("snapshot_id")
    prune = snap_sub.add_parser("prune", help="Delete snapshots not kept")
    prune.add_argument(
        "--keep", metavar="ID", action="append",
        help="Snapshot id to keep (repeatable)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _load_config(args)
    except (OSError, ValueError) as exc:
        print(f"Error: cannot load config: {exc}", file=sys.stderr)
        sys.exit(2)

    log_file = _configure_logging(config.log_level, args.verbose)
    logger.info(
        "Starting quill %s vault=%s config=%s log=%s",
        args.command,
        config.vault_root,
        args.config or "<env>",
        log_file,
    )

    if args.command == "replay":
        try:
            code = asyncio.run(_replay(args, config))
        except (OSError, ValueError) as exc:
            logger.error("Replay failed: %s", exc)
            print(f"Error: {exc}", file=sys.stderr)
            code = 1
        except KeyboardInterrupt:
            code = 130
        sys.exit(code)

    if args.command == "snapshots":
        from quill.engine.errors import QuillError

        try:
            code = _snapshots(args, config)
        except (QuillError, ValueError) as exc:
            logger.error("Snapshot command failed: %s", exc)
            print(f"Error: {exc}", file=sys.stderr)
            code = 1
        sys.exit(code)


if __name__ == "__main__":
    main()
