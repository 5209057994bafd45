from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .catalog import BackupRecord
from .errors import ParseError
from .restore import RestoreReport
from .selection import parse_selection

DEFAULT_SUBDIRECTORY = "restored-repos"
QUIT_WORDS = ("quit", "exit")

InputFunc = Callable[[str], str]
OutputFunc = Callable[[str], None]
RestoreFunc = Callable[[Sequence[BackupRecord], Path], RestoreReport]


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    size = float(size_bytes)
    for unit in ("KB", "MB", "GB"):
        size /= 1024
        if size < 1024 or unit == "GB":
            break
    return f"{size:.1f} {unit}"


class RestoreSession:
    """Prompts for a selection, a destination and a confirmation."""

    def __init__(
        self,
        records: Sequence[BackupRecord],
        input_func: InputFunc = input,
        output: OutputFunc = print,
        cwd: Optional[Path] = None,
    ) -> None:
        self._records = list(records)
        self._input = input_func
        self._output = output
        self._cwd = cwd or Path.cwd()

    def say(self, message: str) -> None:
        self._output(message)

    @property
    def records(self) -> List[BackupRecord]:
        return self._records

    def display_catalog(self) -> None:
        self._output("")
        self._output("Available backups:")
        width = len(str(len(self._records)))
        for index, record in enumerate(self._records, start=1):
            self._output(
                f"  {index:>{width}}) {record.repository:<40} {record.timestamp}  {format_size(record.size_bytes):>10}"
            )
        self._output("")

    def _ask(self, prompt: str) -> Optional[str]:
        try:
            return self._input(prompt).strip()
        except EOFError:
            return None

    def prompt_selection(self) -> Optional[List[BackupRecord]]:
        """Return the chosen records, or None when the user quits."""
        while True:
            answer = self._ask(
                f"Select backups to restore (e.g. 1,3-5), 'all', or 'quit' [1-{len(self._records)}]: "
            )
            if answer is None or answer.lower() in QUIT_WORDS:
                return None
            if answer.lower() == "all":
                return list(self._records)
            try:
                indices = parse_selection(answer, len(self._records))
            except ParseError as exc:
                self._output(f"Invalid selection: {exc}")
                continue
            return [self._records[index - 1] for index in indices]

    def prompt_destination(self) -> Optional[Path]:
        subdirectory = self._cwd / DEFAULT_SUBDIRECTORY
        self._output("Restore destination:")
        self._output(f"  1) Current directory ({self._cwd})")
        self._output(f"  2) Subdirectory ({subdirectory})")
        self._output("  3) Custom path")
        while True:
            answer = self._ask("Choice [2]: ")
            if answer is None or answer.lower() in QUIT_WORDS:
                return None
            if answer in ("", "2"):
                return subdirectory
            if answer == "1":
                return self._cwd
            if answer == "3":
                path = self._ask("Destination path: ")
                if path is None:
                    return None
                if path:
                    return Path(path).expanduser()
                self._output("A destination path is required.")
                continue
            self._output("Please enter 1, 2 or 3.")

    def confirm(self, selected: Sequence[BackupRecord], destination: Path) -> bool:
        self._output("")
        self._output(f"About to restore {len(selected)} archive(s) into {destination}:")
        for record in selected:
            self._output(f"  - {record.repository} ({record.timestamp}) -> {destination / record.restore_dirname}")
        self._output("Existing directories with the same name will be replaced.")
        answer = self._ask("Proceed? [y/N]: ")
        return bool(answer) and answer.lower() in ("y", "yes")

    def print_report(self, report: RestoreReport) -> None:
        self._output("")
        for item in report.items:
            if item.ok:
                self._output(f"  OK      {item.name}")
            else:
                self._output(f"  FAILED  {item.name}: {item.error}")
        self._output("")
        self._output(
            f"Restore complete: {report.succeeded} succeeded, {report.failed} failed. Destination: {report.destination}"
        )


def run_session(
    session: RestoreSession,
    restore: RestoreFunc,
    selection: Optional[str] = None,
    destination: Optional[Path] = None,
    assume_yes: bool = False,
) -> Optional[RestoreReport]:
    """Drive one restore session. Returns None if the user backed out before restoring."""
    if not session.records:
        session.say("No backups found.")
        return None

    session.display_catalog()
    if selection is not None:
        choice = selection.strip().lower()
        if choice in QUIT_WORDS:
            return None
        if choice == "all":
            selected = list(session.records)
        else:
            selected = [session.records[index - 1] for index in parse_selection(selection, len(session.records))]
    else:
        selected = session.prompt_selection()
    if not selected:
        session.say("Nothing selected; exiting.")
        return None

    if destination is None:
        destination = session.prompt_destination()
        if destination is None:
            session.say("Restore cancelled.")
            return None

    if not assume_yes and not session.confirm(selected, destination):
        session.say("Restore cancelled.")
        return None

    report = restore(selected, destination)
    session.print_report(report)
    return report
