from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MALFORMED_SUBSCRIPTS = "malformed_subscripts"
    UNSUPPORTED_FEATURE = "unsupported_feature"
    ARITY_MISMATCH = "arity_mismatch"
    DUPLICATE_OUTPUT_INDEX = "duplicate_output_index"
    SHAPE_MISMATCH = "shape_mismatch"
    GENERATION_ERROR = "generation_error"

    @property
    def compile_time(self) -> bool:
        return self is not ErrorKind.SHAPE_MISMATCH


@dataclass(frozen=True)
class SourceSpan:
    """Columns (1-based, end exclusive) into the subscript text.

    ``filename`` and ``line`` locate the call site when the host knows it.
    """

    start: int
    end: int
    filename: Optional[str] = None
    line: Optional[int] = None

    def at_call_site(self, filename: Optional[str], line: Optional[int]) -> "SourceSpan":
        return SourceSpan(self.start, self.end, filename=filename, line=line)


class EinsumError(Exception):
    """Base class for einc-specific exceptions."""

    kind: ErrorKind = ErrorKind.GENERATION_ERROR

    def __init__(
        self,
        message: str,
        *,
        span: Optional[SourceSpan] = None,
        text: Optional[str] = None,
    ):
        detail = _format_location(span, text)
        super().__init__(f"{message}{detail}")
        self.message = message
        self.span = span
        self.text = text


class MalformedSubscripts(EinsumError, ValueError):
    kind = ErrorKind.MALFORMED_SUBSCRIPTS


class UnsupportedFeature(EinsumError, NotImplementedError):
    kind = ErrorKind.UNSUPPORTED_FEATURE


class ArityMismatch(EinsumError, TypeError):
    kind = ErrorKind.ARITY_MISMATCH

    def __init__(self, message: str, *, expected: int, actual: int, **kwargs):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class DuplicateOutputIndex(EinsumError, ValueError):
    kind = ErrorKind.DUPLICATE_OUTPUT_INDEX

    def __init__(self, message: str, *, label: str, **kwargs):
        super().__init__(message, **kwargs)
        self.label = label


class ShapeMismatch(EinsumError, ValueError):
    """Raised by generated code when operand sizes disagree at execution time."""

    kind = ErrorKind.SHAPE_MISMATCH

    def __init__(
        self,
        message: str,
        *,
        label: Optional[str] = None,
        expected: Optional[int] = None,
        actual: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.label = label
        self.expected = expected
        self.actual = actual


class GenerationError(EinsumError, RuntimeError):
    kind = ErrorKind.GENERATION_ERROR


@dataclass(frozen=True)
class Diagnostic:
    """Result-side view of a failed expansion, consumed by host integrations."""

    kind: ErrorKind
    message: str
    span: Optional[SourceSpan] = None
    text: Optional[str] = None

    @classmethod
    def from_error(cls, error: EinsumError) -> "Diagnostic":
        return cls(kind=error.kind, message=error.message, span=error.span, text=error.text)

    def render(self) -> str:
        prefix = ""
        if self.span is not None and self.span.filename is not None:
            prefix = self.span.filename
            if self.span.line is not None:
                prefix += f":{self.span.line}"
            prefix += ": "
        return f"{prefix}error[{self.kind.value}]: {self.message}{_format_location(self.span, self.text)}"


def _format_location(span: Optional[SourceSpan], text: Optional[str]) -> str:
    if span is None:
        return ""
    location_str = f" (col {span.start})"
    if text is None or span.start < 1:
        return location_str
    width = max(1, span.end - span.start)
    caret = " " * (span.start - 1) + "^" * width
    return f"{location_str}\n  {text}\n  {caret}"
