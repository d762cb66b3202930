"""Grounded answering over stored QA records.

Handles:
- Similarity retrieval of QA records for a question
- Length-bounded context assembly
- Prompt construction and generation
- Graceful degradation to a fixed apology on any failure
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import structlog

from docqa import config
from docqa.errors import ConfigurationError, GenerationError, RetrievalError
from docqa.interfaces import Generator, Retriever
from docqa.rag.records import QARecord

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are a helpful assistant that answers questions using the provided context.
If the context does not contain enough information to answer the question, say so.
Keep your answers concise and focused on the question asked."""

ANSWER_PROMPT = """{system}

Context:
{context}

Question: {question}

Answer:"""

FALLBACK_ANSWER = (
    "I'm sorry, I couldn't come up with an answer right now. Please try again later."
)

CONTEXT_SEPARATOR = "\n\n"


def build_context(
    records: Sequence[QARecord], max_docs: int, max_chars: int
) -> Tuple[str, List[QARecord]]:
    """Concatenate rendered records, best first, within both limits.

    Accumulation stops at ``max_docs`` records or at the first record that
    would push the context past ``max_chars``; records are never cut.

    Returns:
        (context text, records included)
    """
    parts: List[str] = []
    used: List[QARecord] = []
    total = 0

    for record in records:
        if len(used) >= max_docs:
            break

        text = record.render()
        added = len(text) + (len(CONTEXT_SEPARATOR) if parts else 0)
        if total + added > max_chars:
            break

        parts.append(text)
        used.append(record)
        total += added

    return CONTEXT_SEPARATOR.join(parts), used


def build_answer_prompt(question: str, context: str) -> str:
    return ANSWER_PROMPT.format(system=SYSTEM_PROMPT, context=context, question=question)


@dataclass
class ComposedAnswer:
    """Answer text plus the records it was grounded on."""

    text: str
    records: List[QARecord] = field(default_factory=list)
    degraded: bool = False  # True when the fallback apology was returned

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.text,
            "sources": [record.to_dict() for record in self.records],
            "degraded": self.degraded,
        }


def _check_limits(max_docs: int, max_context_chars: int) -> None:
    if max_docs < 1:
        raise ConfigurationError(f"max_docs must be at least 1, got {max_docs}")
    if max_context_chars < 0:
        raise ConfigurationError(
            f"max_context_chars must not be negative, got {max_context_chars}"
        )


class AnswerComposer:
    """Answers questions from retrieved QA records."""

    def __init__(
        self,
        retriever: Retriever,
        generator: Optional[Generator] = None,
        max_docs: int = None,
        max_context_chars: int = None,
        timeout: float = None,
    ):
        """Initialize the composer.

        Args:
            retriever: Similarity search over stored records
            generator: Generation backend (defaults to the shared Ollama client)
            max_docs: Max records placed in the context (default from config)
            max_context_chars: Max context length in characters (default from config)
            timeout: Generation timeout in seconds (default from config)

        Raises:
            ConfigurationError: If the limits are invalid
        """
        if generator is None:
            from docqa.llm_client import ollama_client

            generator = ollama_client

        self.retriever = retriever
        self.generator = generator
        self.max_docs = max_docs if max_docs is not None else config.MAX_RELEVANT_DOCS
        self.max_context_chars = (
            max_context_chars if max_context_chars is not None else config.MAX_CONTEXT_CHARS
        )
        self.timeout = timeout if timeout is not None else config.GENERATION_TIMEOUT

        _check_limits(self.max_docs, self.max_context_chars)

    async def respond(
        self,
        question: str,
        max_docs: Optional[int] = None,
        max_context_chars: Optional[int] = None,
    ) -> ComposedAnswer:
        """Answer a question, returning the text and the records used.

        Never raises for retrieval or generation problems; those produce the
        fallback apology with ``degraded=True``.

        Raises:
            ConfigurationError: If an override limit is invalid
        """
        max_docs = max_docs if max_docs is not None else self.max_docs
        max_context_chars = (
            max_context_chars if max_context_chars is not None else self.max_context_chars
        )
        _check_limits(max_docs, max_context_chars)

        logger.info("answer_requested", question_length=len(question))

        try:
            ranked = await self.retriever.search_similar(question)
        except RetrievalError as e:
            logger.error("answer_retrieval_failed", error=str(e))
            return ComposedAnswer(text=FALLBACK_ANSWER, degraded=True)
        except Exception as e:
            logger.exception("answer_retrieval_error", error_type=type(e).__name__)
            return ComposedAnswer(text=FALLBACK_ANSWER, degraded=True)

        context, used = build_context(ranked, max_docs, max_context_chars)

        logger.debug(
            "context_built",
            retrieved=len(ranked),
            used=len(used),
            context_chars=len(context),
        )

        prompt = build_answer_prompt(question, context)

        try:
            async with asyncio.timeout(self.timeout):
                text = await self.generator.generate(prompt)
        except (GenerationError, TimeoutError) as e:
            logger.error(
                "answer_generation_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return ComposedAnswer(text=FALLBACK_ANSWER, records=used, degraded=True)
        except Exception as e:
            logger.exception("answer_generation_error", error_type=type(e).__name__)
            return ComposedAnswer(text=FALLBACK_ANSWER, records=used, degraded=True)

        if not text or not text.strip():
            logger.warning("empty_answer_generated")
            return ComposedAnswer(text=FALLBACK_ANSWER, records=used, degraded=True)

        logger.info(
            "answer_generated",
            answer_length=len(text),
            sources=len(used),
        )

        return ComposedAnswer(text=text, records=used)

    async def answer(
        self,
        question: str,
        max_docs: Optional[int] = None,
        max_context_chars: Optional[int] = None,
    ) -> str:
        """Answer a question with text grounded on retrieved records."""
        composed = await self.respond(question, max_docs, max_context_chars)
        return composed.text
