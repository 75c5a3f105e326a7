"""Thread and process names read from procfs."""

from __future__ import annotations

from dataclasses import dataclass

_PROCFS = "/proc"


def _read_stat(task_id: int) -> tuple[int, str, int]:
    """Return (pid, comm, pgrp) from a task's stat file."""
    with open(f"{_PROCFS}/{task_id}/stat", encoding="utf-8", errors="replace") as handle:
        text = handle.read()
    try:
        open_paren = text.index("(")
        close_paren = text.rindex(")")
        pid = int(text[:open_paren].strip())
        comm = text[open_paren + 1 : close_paren]
        rest = text[close_paren + 1 :].split()
        pgrp = int(rest[2])
    except (ValueError, IndexError) as exc:
        raise ValueError(f"malformed stat file for task {task_id}") from exc
    return pid, comm, pgrp


@dataclass(frozen=True)
class TaskName:
    """The name of a task's process and of the task itself."""

    main_thread: str
    current_thread: str

    @classmethod
    def errored(cls) -> TaskName:
        return cls(
            main_thread="<could not fetch process name>",
            current_thread="<could not fetch thread name>",
        )

    @classmethod
    def for_task(cls, task_id: int) -> TaskName:
        """Read the names for a task; raises OSError or ValueError on failure."""
        pid, comm, pgrp = _read_stat(task_id)
        _, main_comm, _ = _read_stat(pgrp)
        thread_name = "<main thread>" if pid == pgrp else comm
        return cls(main_thread=main_comm, current_thread=thread_name)