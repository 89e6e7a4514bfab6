"""
A bounded in-memory log of a child process's standard output and error.
"""

from dataclasses import dataclass, field

from companion_hub.models.settings import DEFAULT_MAX_MONITOR_ENTRIES

STDOUT = "stdout"
STDERR = "stderr"


@dataclass
class OutputMonitor:
    """
    Collects output lines of both streams.

    When the combined line count reaches ``max_entries`` the next line clears
    both buffers and the counter restarts at one. Old output is dropped in a
    single step rather than line by line.
    """

    max_entries: int = DEFAULT_MAX_MONITOR_ENTRIES
    stdout_lines: list[str] = field(default_factory=list)
    stderr_lines: list[str] = field(default_factory=list)
    entries: int = 0

    def append(self, line: str, stream: str = STDOUT) -> bool:
        """
        Records one line. Empty lines are ignored.

        Returns:
            True if the line was recorded.
        """
        if not line:
            return False
        if self.entries >= self.max_entries:
            self.reset()
        if stream == STDERR:
            self.stderr_lines.append(line)
        else:
            self.stdout_lines.append(line)
        self.entries += 1
        return True

    def reset(self) -> None:
        self.stdout_lines.clear()
        self.stderr_lines.clear()
        self.entries = 0

    @property
    def stdout(self) -> str:
        return "".join(f"{line}\n" for line in self.stdout_lines)

    @property
    def stderr(self) -> str:
        return "".join(f"{line}\n" for line in self.stderr_lines)

    @property
    def text(self) -> str:
        """Standard output followed by standard error, separated by a blank line."""
        if not self.entries:
            return ""
        return f"{self.stdout}\n\n{self.stderr}"

    @property
    def available(self) -> bool:
        return bool(self.entries)
