from __future__ import annotations

from typing import Optional

from .exceptions import ArityMismatch, DuplicateOutputIndex, SourceSpan
from .ir import Subscripts


def _output_column(subscripts: Subscripts, position: int) -> Optional[SourceSpan]:
    text = subscripts.text
    if text is None or "->" not in text:
        return None
    arrow = text.index("->") + 2
    seen = -1
    for offset, char in enumerate(text[arrow:]):
        if char.isspace():
            continue
        seen += 1
        if seen == position:
            start = arrow + offset + 1
            return SourceSpan(start, start + 1)
    return None


def validate_subscripts(subscripts: Subscripts, num_operands: int) -> None:
    """Check arity and output well-formedness.

    Per-label size agreement cannot be checked here; generated kernels assert
    it when they run.
    """
    expected = subscripts.num_inputs
    if num_operands != expected:
        raise ArityMismatch(
            f"Argument number mismatch: subscripts ({expected}), args ({num_operands})",
            expected=expected,
            actual=num_operands,
            span=SourceSpan(1, len(subscripts.text) + 1) if subscripts.text else None,
            text=subscripts.text,
        )

    seen = set()
    for position, label in enumerate(subscripts.output):
        if label in seen:
            raise DuplicateOutputIndex(
                f"Output index '{label}' appears more than once",
                label=label,
                span=_output_column(subscripts, position),
                text=subscripts.text,
            )
        seen.add(label)
