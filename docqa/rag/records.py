"""QA record model shared by the extractor, the store and the composer."""
import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from docqa.errors import ParseError
from docqa.rag.answer_lines import AnswerLine, reconstruct, serialize


@dataclass(frozen=True)
class QARecord:
    """A question paired with a structured, multi-line answer.

    Records are immutable; attaching an embedding produces a new record.
    """

    question: str
    answer_lines: Tuple[AnswerLine, ...]
    embedding: Optional[List[float]] = dataclasses.field(
        default=None, compare=False, repr=False
    )
    source: Optional[str] = None

    def __post_init__(self):
        if not self.question or not self.question.strip():
            raise ParseError("QA record has an empty question")
        if not self.answer_lines:
            raise ParseError(f"QA record has no answer lines: {self.question[:80]!r}")
        # Accept any sequence but store a tuple so the record stays hashable
        object.__setattr__(self, "answer_lines", tuple(self.answer_lines))

    @classmethod
    def from_raw(
        cls, question: str, raw_answer: str, source: Optional[str] = None
    ) -> "QARecord":
        """Build a record from a parsed question and raw answer text.

        Raises:
            ParseError: If the question is empty or the answer has no lines
        """
        return cls(
            question=question.strip(),
            answer_lines=tuple(reconstruct(raw_answer)),
            source=source,
        )

    @property
    def formatted_answer(self) -> str:
        return serialize(self.answer_lines)

    def render(self) -> str:
        """Render as the ``Q: ... / A: ...`` block used in prompts and embeddings."""
        return f"Q: {self.question}\nA: {self.formatted_answer}"

    def with_embedding(self, embedding: Sequence[float]) -> "QARecord":
        return dataclasses.replace(self, embedding=list(embedding))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.formatted_answer,
            "answer_lines": [line.to_dict() for line in self.answer_lines],
            "source": self.source,
        }
