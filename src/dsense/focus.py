"""Changed-line and focus-line computation."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from dsense.models import DEFAULT_CONTEXT_LINES, ChangedRange


@dataclass(frozen=True)
class FocusWindow:
    """Line-number sets that scope analysis of one file.

    With no changed ranges every line is both changed and in focus
    ("analyze whole file" mode). Otherwise each range contributes its own
    lines to ``changed`` and a context-padded window, clipped to the file,
    to ``focus``. Padding never lands in ``changed``.
    """

    total_lines: int  # Number of lines in the file
    changed: frozenset[int]  # Lines inside a reported range (1-based)
    focus: frozenset[int]  # Changed lines plus context padding (1-based)

    @classmethod
    def compute(
        cls,
        total_lines: int,
        changed_ranges: Iterable[ChangedRange] | None = None,
        context_lines: int = DEFAULT_CONTEXT_LINES,
    ) -> 'FocusWindow':
        """Derive changed and focus sets from changed ranges.

        Args:
            total_lines: Number of lines in the file.
            changed_ranges: Ranges reported by the diff, possibly None or empty.
            context_lines: Lines of context added around each range.

        Returns:
            FocusWindow for the file.
        """
        ranges = list(changed_ranges or [])
        if not ranges:
            everything = frozenset(range(1, total_lines + 1))
            return cls(total_lines=total_lines, changed=everything, focus=everything)

        changed: set[int] = set()
        focus: set[int] = set()
        for changed_range in ranges:
            start, end = changed_range.start_line, changed_range.end_line
            changed.update(range(start, end + 1))
            window_start = max(1, start - context_lines)
            window_end = min(total_lines, end + context_lines)
            focus.update(range(window_start, window_end + 1))

        # A range running past EOF still counts as changed
        focus.update(changed)
        return cls(total_lines=total_lines, changed=frozenset(changed), focus=frozenset(focus))

    def is_changed_line(self, line_number: int) -> bool:
        return line_number in self.changed

    def should_analyze_line(self, line_number: int) -> bool:
        return line_number in self.focus

    def focus_lines(self) -> Iterator[int]:
        """Yield focus line numbers in ascending order."""
        yield from sorted(self.focus)

    def any_changed(self, lines: Iterable[int]) -> bool:
        return any(n in self.changed for n in lines)
