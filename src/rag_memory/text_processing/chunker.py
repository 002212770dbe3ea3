"""Deterministic line-oriented chunker.

Text is split into lines and accumulated into chunks that target a
``[min_chars_soft_limit, max_chars_soft_limit]`` band, preferring to break at
section boundaries (``delimiter``, a blank line by default).

``"\\n".join(chunk_text(text)) == text`` holds for every input in which no
single line has to be cut by ``max_chars_hard_limit``; pieces of a cut line
re-join with ``""`` instead.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rag_memory.config import Settings


@dataclass(frozen=True)
class ChunkerOptions:
    """Size and structure constraints for :func:`chunk_text`."""

    min_lines: int = 1
    min_chars_soft_limit: int = 200
    max_chars_soft_limit: int = 2000
    max_chars_hard_limit: int | None = None
    delimiter: str = "\n\n"

    def __post_init__(self) -> None:
        if self.min_lines < 0:
            raise ValueError("min_lines must be >= 0")
        if self.min_chars_soft_limit < 1 or self.max_chars_soft_limit < 1:
            raise ValueError("soft limits must be >= 1")
        if (
            self.max_chars_hard_limit is not None
            and self.max_chars_hard_limit < self.max_chars_soft_limit
        ):
            raise ValueError("max_chars_hard_limit must be >= max_chars_soft_limit")
        if not self.delimiter:
            raise ValueError("delimiter must not be empty")

    @classmethod
    def from_settings(cls, settings: Settings) -> ChunkerOptions:
        return cls(
            min_lines=settings.chunk_min_lines,
            min_chars_soft_limit=settings.chunk_min_chars_soft_limit,
            max_chars_soft_limit=settings.chunk_max_chars_soft_limit,
            max_chars_hard_limit=settings.chunk_max_chars_hard_limit,
            delimiter=settings.chunk_delimiter,
        )

    def fingerprint(self) -> str:
        """Stable description of the strategy, folded into content hashes."""
        return json.dumps({"chunker": "lines", **asdict(self)}, sort_keys=True)

    @property
    def split_multiplier(self) -> float:
        # A wide soft-limit band needs less headroom before honoring a boundary.
        return 1.15 if self.max_chars_soft_limit / self.min_chars_soft_limit > 5 else 1.3


def chunk_text(text: str, options: ChunkerOptions | None = None) -> list[str]:
    """Split ``text`` into ordered chunks.

    Args:
        text: Arbitrary input text.
        options: Size/structure constraints; defaults to :class:`ChunkerOptions`.

    Returns:
        Ordered chunk strings; empty for empty input.
    """
    opts = options or ChunkerOptions()
    if not text:
        return []

    lines = text.split("\n")
    boundary_min_chars = min(opts.min_chars_soft_limit * 0.8, 150)
    boundary_target = opts.min_chars_soft_limit * opts.split_multiplier

    chunks: list[str] = []
    current: list[str] = []

    for index, line in enumerate(lines):
        current_length = _joined_length(current)
        candidate_length = current_length + len(line) + (1 if current else 0)

        if current and candidate_length > opts.max_chars_soft_limit:
            pieces = _split_oversized(line, opts.max_chars_hard_limit)
            if len(pieces) > 1:
                chunks.append("\n".join(current))
                carried: list[str] = []
            else:
                carried = _flush_before_overflow(current, line, opts, chunks)
            chunks.extend(pieces[:-1])
            current = [*carried, pieces[-1]]
            continue

        if (
            _starts_new_section(lines, index, opts.delimiter)
            and len(current) >= opts.min_lines
            and current_length >= boundary_min_chars
            and candidate_length >= boundary_target
        ):
            # Trailing blank lines stay: they are the boundary itself.
            chunks.append("\n".join(current))
            current = [line]
            continue

        current.append(line)

        if len(current) == 1 and len(line) > opts.max_chars_soft_limit:
            pieces = _split_oversized(line, opts.max_chars_hard_limit)
            if len(pieces) > 1:
                chunks.extend(pieces[:-1])
                current = [pieces[-1]]
            else:
                chunks.append(line)
                current = []

    if current:
        chunks.extend(_split_oversized("\n".join(current), opts.max_chars_hard_limit))

    return chunks


def _joined_length(lines: Sequence[str]) -> int:
    if not lines:
        return 0
    return sum(len(line) for line in lines) + len(lines) - 1


def _starts_new_section(lines: Sequence[str], index: int, delimiter: str) -> bool:
    """True when the lines just before ``lines[index]`` spell out ``delimiter``.

    The delimiter's whole middle lines must match exactly; its first part only
    has to end the line before them, and the start of the text counts as an
    empty line. A delimiter that does not end in a newline never matches.
    """
    if index == 0:
        return False
    *parts, tail = delimiter.split("\n")
    if not parts or tail:
        return False
    head, middle = parts[0], parts[1:]
    start = index - len(middle)
    if start < 0 or list(lines[start:index]) != middle:
        return False
    if start == 0:
        return head == ""
    return lines[start - 1].endswith(head)


def _split_trailing_blank_lines(lines: Sequence[str]) -> tuple[list[str], list[str]]:
    end = len(lines)
    while end > 0 and not lines[end - 1].strip():
        end -= 1
    return list(lines[:end]), list(lines[end:])


def _flush_before_overflow(
    current: list[str],
    line: str,
    opts: ChunkerOptions,
    chunks: list[str],
) -> list[str]:
    """Emit ``current`` ahead of an overflowing ``line``.

    Trailing blank lines are moved to the head of the next chunk instead of
    being emitted. They stay put when moving them would push the next chunk
    past the soft limit (or, for a line already over it, past the hard limit).
    A one-line buffer is emitted as is.

    Returns:
        Lines carried into the next chunk.
    """
    kept, blanks = _split_trailing_blank_lines(current)
    if len(current) > 1 and blanks:
        carried_length = _joined_length([*blanks, line])
        fits = carried_length <= opts.max_chars_soft_limit or (
            len(line) > opts.max_chars_soft_limit
            and (opts.max_chars_hard_limit is None or carried_length <= opts.max_chars_hard_limit)
        )
        if fits:
            if kept:
                chunks.append("\n".join(kept))
            return blanks
    chunks.append("\n".join(current))
    return []


def _split_oversized(line: str, max_chars_hard_limit: int | None) -> list[str]:
    """Halve ``line`` on character offsets until every piece fits the hard limit."""
    if max_chars_hard_limit is None or len(line) <= max_chars_hard_limit:
        return [line]

    pieces: list[str] = []
    stack = [line]
    while stack:
        piece = stack.pop()
        if len(piece) <= max_chars_hard_limit:
            pieces.append(piece)
            continue
        middle = len(piece) // 2
        stack.append(piece[middle:])
        stack.append(piece[:middle])
    return pieces
