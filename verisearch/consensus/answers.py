"""
Answer Extraction & Normalization
==================================

Pulls the final answer out of free-form candidate text and reduces it
to a comparison key. Shared by the consensus aggregators and the
deterministic verifier so that "the same answer" means the same thing
everywhere.

Extraction order:
    1. Last line introduced by a conclusion prefix
       ("Answer:", "Final answer:", "The answer is", "Therefore:",
       "Thus:", "So:", "Result:")
    2. First double-quoted span
    3. Last non-empty line
"""

from __future__ import annotations

import re
from typing import Callable

_PREFIX_PATTERN = re.compile(
    r"^\s*(?:(?:final answer|answer|therefore|thus|so|result)\s*:|the answer is\s*:?)\s*(.+?)\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_QUOTE_PATTERN = re.compile(r'"([^"]+)"')
_TRAILING_PUNCT = ".!;,"

AnswerNormalizer = Callable[[str], str]


def extract_answer(content: str) -> str:
    """
    Extract the final answer from candidate content.

    Examples:
        >>> extract_answer("Thinking...\\n\\nThe answer is: 42")
        '42'
        >>> extract_answer("Let's calculate.\\nTherefore: 100")
        '100'
        >>> extract_answer("Paris")
        'Paris'
    """
    if not content:
        return ""

    matches = _PREFIX_PATTERN.findall(content)
    matches = [m for m in matches if m.strip()]
    if matches:
        return matches[-1].strip()

    quoted = _QUOTE_PATTERN.search(content)
    if quoted:
        return quoted.group(1).strip()

    lines = [line.strip() for line in content.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def normalize_answer(answer: str, case_sensitive: bool = False) -> str:
    """Trim, collapse whitespace, drop trailing punctuation, case-fold."""
    key = " ".join(answer.split()).rstrip(_TRAILING_PUNCT).strip()
    return key if case_sensitive else key.casefold()


def answer_key(content: str) -> str:
    """Default normalizer: extract then normalize."""
    return normalize_answer(extract_answer(content))
