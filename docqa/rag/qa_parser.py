"""Parser for question-answer pairs in free-form model output.

The model is asked to emit blocks like::

    Q: What is X?
    A: X is Y.

separated by blank lines. Output format is not guaranteed, so the parser is
tolerant: blocks that do not look like a pair are dropped and never raise.
"""
import re
from typing import List, Optional, Tuple
import structlog

from docqa.errors import ParseError
from docqa.rag.records import QARecord

logger = structlog.get_logger()

# A closing "**" is only consumed when the marker opened with one
QUESTION_MARKER = re.compile(
    r"^\s*(\*\*)?(?:question|q)[ \t]*:(?(1)(?:[ \t]*\*\*)?)[ \t]*", re.IGNORECASE
)
ANSWER_MARKER = re.compile(
    r"^\s*(\*\*)?(?:answer|a)[ \t]*:(?(1)(?:[ \t]*\*\*)?)[ \t]*", re.IGNORECASE
)
BLOCK_SEPARATOR = re.compile(r"\n[ \t]*\n")


def split_blocks(raw_response: str) -> List[str]:
    """Split a response into candidate blocks on blank lines."""
    normalized = raw_response.replace("\r\n", "\n").replace("\r", "\n")
    return [block for block in BLOCK_SEPARATOR.split(normalized) if block.strip()]


def parse_block(block: str) -> Optional[Tuple[str, str]]:
    """Parse one block into ``(question, raw_answer)``.

    Returns:
        The pair, or None if the block is not a well-formed pair
    """
    lines = [line for line in block.split("\n") if line.strip()]
    if len(lines) < 2:
        return None

    first, rest = lines[0], lines[1:]
    if not QUESTION_MARKER.match(first):
        return None
    if not any(ANSWER_MARKER.match(line) for line in rest):
        return None

    question = QUESTION_MARKER.sub("", first, count=1).strip()
    answer = ANSWER_MARKER.sub("", "\n".join(rest), count=1).strip()
    return question, answer


def parse_qa_pairs(raw_response: Optional[str]) -> List[Tuple[str, str]]:
    """Extract question/raw-answer pairs from a model response.

    Args:
        raw_response: Text returned by the generation backend

    Returns:
        Pairs in response order; malformed blocks are skipped
    """
    if not raw_response or not raw_response.strip():
        return []

    blocks = split_blocks(raw_response)
    pairs = []
    for block in blocks:
        pair = parse_block(block)
        if pair is not None:
            pairs.append(pair)

    if len(pairs) < len(blocks):
        logger.debug(
            "qa_blocks_discarded",
            block_count=len(blocks),
            pair_count=len(pairs),
        )

    return pairs


def parse_records(raw_response: Optional[str], source: Optional[str] = None) -> List[QARecord]:
    """Parse a model response straight into QA records.

    Pairs whose question or answer turns out empty are dropped.
    """
    records = []
    for question, raw_answer in parse_qa_pairs(raw_response):
        try:
            records.append(QARecord.from_raw(question, raw_answer, source=source))
        except ParseError as e:
            logger.debug("qa_pair_dropped", reason=str(e))
    return records
