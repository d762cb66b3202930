"""Answer line reconstruction.

Turns the free-form answer text a model produces into an ordered list of
semantic lines: paragraphs, bullet items and numbered items. Wrapped
paragraph lines are joined, and indented continuation lines inside a list
are folded into the item they continue.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional
import structlog

logger = structlog.get_logger()

BULLET_PATTERN = re.compile(r"^[•\-*]\s+(.+)$")
NUMBER_PATTERN = re.compile(r"^\d+\.\s+(.+)$")
LONE_MARKER_PATTERN = re.compile(r"^(?:[•\-*]|\d+\.)$")


class LineKind(str, Enum):
    PARAGRAPH = "paragraph"
    BULLET = "bullet"
    NUMBERED = "numbered"


@dataclass(frozen=True)
class AnswerLine:
    """One semantic unit of an answer."""

    kind: LineKind
    text: str

    @property
    def is_list_item(self) -> bool:
        return self.kind is not LineKind.PARAGRAPH

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "AnswerLine":
        return cls(kind=LineKind(data["kind"]), text=data["text"])


def _match_list_marker(stripped: str) -> Optional[AnswerLine]:
    match = BULLET_PATTERN.match(stripped)
    if match:
        return AnswerLine(LineKind.BULLET, match.group(1).strip())
    match = NUMBER_PATTERN.match(stripped)
    if match:
        return AnswerLine(LineKind.NUMBERED, match.group(1).strip())
    return None


def _is_indented(line: str) -> bool:
    return line.startswith("\t") or line.startswith("    ")


def reconstruct(raw_answer: Optional[str]) -> List[AnswerLine]:
    """Split raw answer text into paragraphs and list items.

    Processed line by line:

    - a blank line ends the current paragraph and leaves list mode
    - a ``-``, ``*``, ``•`` or ``<n>.`` line ends the current paragraph and
      starts a list item (marker stripped)
    - in list mode, an indented line extends the previous item, any other
      line becomes an item of its own
    - outside list mode, lines are joined into one paragraph
    - a line holding nothing but a marker is skipped

    Args:
        raw_answer: Answer text as produced by the model

    Returns:
        Answer lines in order; empty for empty or blank input
    """
    if not raw_answer or not raw_answer.strip():
        return []

    lines: List[AnswerLine] = []
    paragraph: List[str] = []
    in_list = False

    def flush_paragraph() -> None:
        if paragraph:
            lines.append(AnswerLine(LineKind.PARAGRAPH, " ".join(paragraph)))
            paragraph.clear()

    for line in raw_answer.splitlines():
        stripped = line.strip()

        if not stripped:
            flush_paragraph()
            in_list = False
            continue

        if LONE_MARKER_PATTERN.match(stripped):
            # A marker with no text carries nothing to keep
            continue

        item = _match_list_marker(stripped)
        if item is not None:
            flush_paragraph()
            lines.append(item)
            in_list = True
        elif in_list:
            if _is_indented(line):
                previous = lines[-1]
                lines[-1] = AnswerLine(previous.kind, f"{previous.text} {stripped}")
            else:
                # Model dropped the marker on a follow-up item
                lines.append(AnswerLine(LineKind.BULLET, stripped))
        else:
            paragraph.append(stripped)

    flush_paragraph()

    logger.debug(
        "answer_reconstructed",
        raw_length=len(raw_answer),
        line_count=len(lines),
    )
    return lines


def serialize(answer_lines: Iterable[AnswerLine]) -> str:
    """Render answer lines back to text.

    List items get their marker back (numbered items are renumbered within
    their run) and every paragraph after the first line is preceded by a
    blank line, so ``reconstruct(serialize(lines)) == lines`` for any output
    of :func:`reconstruct`.
    """
    rendered: List[str] = []
    number = 0

    for line in answer_lines:
        if line.kind is LineKind.NUMBERED:
            number += 1
            text = f"{number}. {line.text}"
        else:
            number = 0
            text = f"- {line.text}" if line.kind is LineKind.BULLET else line.text

        if line.kind is LineKind.PARAGRAPH and rendered:
            rendered.append("")
        rendered.append(text)

    return "\n".join(rendered)
