"""Incremental extraction of a fenced code block from streamed model text.

The model is asked for a short explanation plus one fenced Markdown code
block. While the answer streams in, :class:`StreamAssembler` keeps the raw
transcript and re-derives ``(code, language, explanation)`` after every
fragment, so partial answers can be shown as they arrive.

Only *complete* fences count: an opening fence without its closing backticks
is treated as plain text until the closing fence arrives.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


# Optional ASCII language tag, newline, then the shortest body up to the
# next closing fence.
CODE_BLOCK_RE = re.compile(r"```(\w+)?\n(.*?)```", re.DOTALL | re.ASCII)
FENCED_REGION_RE = re.compile(r"```.*?```", re.DOTALL)


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    code: str | None = None
    language: str | None = None
    explanation: str = ""

    @property
    def has_code(self) -> bool:
        return bool(self.code)


EMPTY_RESULT = ExtractionResult()


def extract_code(transcript: str, default_language: str) -> ExtractionResult:
    """Split a transcript into its last complete code block and the prose.

    Args:
        transcript: Everything received so far for one generation
        default_language: Language reported for an untagged fence

    Returns:
        ExtractionResult whose ``code``/``language`` are None when no complete
        block exists; ``explanation`` is the transcript with every fenced
        region removed, stripped.
    """
    matches = list(CODE_BLOCK_RE.finditer(transcript))
    if not matches:
        return ExtractionResult(explanation=transcript.strip())

    last = matches[-1]
    return ExtractionResult(
        code=last.group(2).strip(),
        language=last.group(1) or default_language,
        explanation=FENCED_REGION_RE.sub("", transcript).strip(),
    )


class StreamAssembler:
    """Accumulate streamed fragments and keep the extraction current."""

    def __init__(self, default_language: str = "javascript") -> None:
        self.default_language = default_language
        self._transcript = ""
        self._result = EMPTY_RESULT

    @property
    def transcript(self) -> str:
        return self._transcript

    @property
    def result(self) -> ExtractionResult:
        return self._result

    def feed(self, fragment: str) -> ExtractionResult:
        """Append ``fragment`` and return the recomputed extraction."""
        if not fragment:
            return self._result
        self._transcript += fragment
        self._result = extract_code(self._transcript, self.default_language)
        return self._result

    def reset(self) -> None:
        self._transcript = ""
        self._result = EMPTY_RESULT
