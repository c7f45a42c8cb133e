"""Command-line entry point for reading Ink-style stories page by page."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping, Sequence

from inkreader import (
    MappingRefresher,
    NavigationOutcome,
    NavigationState,
    ReaderSettings,
    ReadingSession,
    ReplayPolicy,
    configure_logging,
    export_ink_script,
    extract_story,
    generate_node_mappings,
    load_sample_document,
    load_story_document,
)
from inkreader.session import NavigatorBackend
from inkreader.settings import normalise_log_level

SAMPLE_STORY_ID = "sample"

HELP_TEXT = """Commands:
  <number>     pick the numbered choice
  c, continue  follow the only path forward
  b, back      return to the previous page
  restart      start again from page 1
  page <n>     jump to page n
  map          list every page and the node it shows
  help         show this overview
  q, quit      leave the reader"""


@dataclass(frozen=True)
class StoryReloadOutcome:
    """Result describing whether the story file changed after polling."""

    reloaded: bool
    message: str | None = None


class StoryFileMonitor:
    """Watch a story document on disk and feed edits to a reading session."""

    def __init__(
        self,
        path: Path,
        session: ReadingSession,
        *,
        initial_timestamp: int | None = None,
    ) -> None:
        self._path = path
        self._session = session
        self._last_timestamp = initial_timestamp
        self._last_error_key: tuple[str, str] | None = None

    def poll(self) -> StoryReloadOutcome:
        """Queue changed content for remapping and apply it once it is due."""

        try:
            timestamp = self._path.stat().st_mtime_ns
        except FileNotFoundError:
            return self._record_error(
                "missing",
                f"Story file '{self._path}' is missing. Keeping the loaded story.",
            )
        except OSError as exc:
            return self._record_error(
                "stat",
                f"Failed to access story file '{self._path}': {exc}. Keeping the loaded story.",
            )

        if self._last_timestamp is None or timestamp > self._last_timestamp:
            try:
                document = load_story_document(self._path)
            except (OSError, ValueError) as exc:
                return self._record_error(
                    "load",
                    f"Failed to reload '{self._path}': {exc}. Keeping the loaded story.",
                )
            self._last_timestamp = timestamp
            self._session.submit_edit(document)

        try:
            applied = self._session.poll_edits()
        except ValueError as exc:
            return self._record_error(
                "apply",
                f"Failed to apply '{self._path}': {exc} Keeping the loaded story.",
            )
        if not applied:
            return StoryReloadOutcome(reloaded=False)

        message = f"Reloaded story from '{self._path}'."
        if self._last_error_key is not None:
            message += " Previous load issues have been resolved."
        self._last_error_key = None
        return StoryReloadOutcome(reloaded=True, message=message)

    def _record_error(self, kind: str, message: str) -> StoryReloadOutcome:
        key = (kind, message)
        if self._last_error_key == key:
            return StoryReloadOutcome(reloaded=False)
        self._last_error_key = key
        return StoryReloadOutcome(reloaded=False, message=message)


def format_state(state: NavigationState[Any]) -> str:
    """Create a printable representation of the current page."""

    lines = [f"[Page {state.page}/{state.total_pages}]", "", state.text or "(no text)"]
    if state.choices and not state.can_continue:
        lines.append("")
        for number, choice in enumerate(state.choices, start=1):
            lines.append(f"  {number}. {choice.text}")
    elif state.can_continue:
        lines.extend(["", "Type 'c' to continue."])
    else:
        lines.extend(["", "The End."])
    return "\n".join(lines)


def format_page_map(session: ReadingSession) -> str:
    lines = []
    for page, node_id in sorted(session.mapping.mappings.page_to_node.items()):
        marker = "*" if page == session.state.page else " "
        lines.append(f"{marker} {page:>3}  {node_id}")
    return "\n".join(lines)


def run_cli(session: ReadingSession, *, monitor: StoryFileMonitor | None = None) -> None:
    """Drive a very small interactive loop using ``input``/``print``."""

    print(f"Reading '{session.story_id}' ({session.total_pages} pages).")
    print("Type 'help' for a command overview or 'quit' to leave.")
    print()
    print(format_state(session.state))

    def _report(outcome: NavigationOutcome) -> None:
        if outcome.succeeded:
            print()
            print(format_state(outcome.state))
        else:
            print(f"Cannot do that: {outcome.reason}")

    while True:
        try:
            raw = input("\n> ")
        except EOFError:
            print()
            break

        if monitor is not None:
            reload = monitor.poll()
            if reload.message:
                print(f"\n[story-watch] {reload.message}\n")
            if reload.reloaded:
                print(format_state(session.state))

        command = raw.strip().lower()
        if not command:
            continue
        if command in {"q", "quit", "exit"}:
            print("Goodbye!")
            break
        if command in {"help", "h", "?"}:
            print(HELP_TEXT)
        elif command in {"c", "continue"}:
            _report(session.continue_story())
        elif command in {"b", "back"}:
            _report(session.back())
        elif command == "restart":
            _report(session.restart())
        elif command == "map":
            print(format_page_map(session))
        elif command.startswith("page"):
            _, _, argument = command.partition(" ")
            try:
                page = int(argument)
            except ValueError:
                print("Usage: page <number>")
                continue
            _report(session.jump_to_page(page))
        elif command.isdigit():
            _report(session.choose(int(command) - 1))
        else:
            print(f"Unknown command '{raw.strip()}'. Type 'help' for a list of commands.")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Read Ink-style stories page by page")
    parser.add_argument(
        "story",
        nargs="?",
        type=Path,
        help=(
            "Path to a story JSON document. Defaults to INKREADER_STORY_PATH "
            "or the bundled sample story."
        ),
    )
    parser.add_argument(
        "--page",
        type=int,
        help="Page to open the story on.",
    )
    parser.add_argument(
        "--backend",
        choices=[backend.value for backend in NavigatorBackend],
        help="Navigation backend (default: chosen from the story format).",
    )
    parser.add_argument(
        "--replay-policy",
        choices=[policy.value for policy in ReplayPolicy],
        help="How page jumps resolve choices while replaying a script.",
    )
    parser.add_argument(
        "--log-level",
        help="Logging level (default: INKREADER_LOG_LEVEL or WARNING).",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "--export",
        action="store_true",
        help="Print the story as Ink source and exit.",
    )
    output.add_argument(
        "--analyze",
        action="store_true",
        help="Print the page mapping and graph findings as JSON and exit.",
    )
    return parser.parse_args(argv)


def _load_document(path: Path | None) -> tuple[str, Mapping[str, Any]]:
    if path is None:
        return SAMPLE_STORY_ID, load_sample_document()
    return path.stem, load_story_document(path)


def main(argv: Sequence[str] | None = None) -> None:
    """Start the interactive reader."""

    args = _parse_args(argv)
    try:
        settings = ReaderSettings.from_env()
        if args.log_level:
            settings = replace(settings, log_level=normalise_log_level(args.log_level))
        if args.replay_policy:
            settings = replace(settings, replay_policy=ReplayPolicy.parse(args.replay_policy))
    except ValueError as exc:
        print(f"Invalid configuration: {exc}")
        raise SystemExit(2) from exc
    configure_logging(settings)

    story_path: Path | None = args.story or settings.story_path
    try:
        story_id, document = _load_document(story_path)
        story = extract_story(document)
    except (OSError, ValueError) as exc:
        print(f"Failed to load story from '{story_path}': {exc}")
        raise SystemExit(2) from exc

    if args.export:
        print(export_ink_script(story))
        return

    if args.analyze:
        result = generate_node_mappings(story)
        payload = result.structure.to_payload()
        payload.update(result.mappings.to_payload())
        payload["totalPages"] = result.total_pages
        payload["usedFallback"] = result.used_fallback
        print(json.dumps(payload, indent=2))
        return

    backend = NavigatorBackend(args.backend) if args.backend else None
    try:
        session = ReadingSession(
            story_id,
            story,
            backend=backend,
            replay_policy=settings.replay_policy,
            refresher=MappingRefresher(debounce_seconds=settings.edit_debounce_seconds),
        )
    except ValueError as exc:
        print(f"Cannot read '{story_id}': {exc}")
        raise SystemExit(2) from exc

    if args.page is not None and args.page != session.state.page:
        outcome = session.jump_to_page(args.page)
        if not outcome.succeeded:
            print(f"Could not open page {args.page}: {outcome.reason}")

    monitor: StoryFileMonitor | None = None
    if story_path is not None:
        try:
            timestamp = story_path.stat().st_mtime_ns
        except OSError:
            timestamp = None
        monitor = StoryFileMonitor(story_path, session, initial_timestamp=timestamp)

    run_cli(session, monitor=monitor)


if __name__ == "__main__":
    main()
