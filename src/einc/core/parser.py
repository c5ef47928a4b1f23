from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from lark import Lark, Token, Transformer
from lark.exceptions import LarkError, UnexpectedCharacters, UnexpectedInput

from .exceptions import MalformedSubscripts, SourceSpan, UnsupportedFeature
from .ir import Labels, Subscripts

logger = logging.getLogger(__name__)

GRAMMAR_PATH = Path(__file__).with_name("einsum_grammar.lark")

ELLIPSIS = "..."


@lru_cache(maxsize=1)
def _build_lark() -> Lark:
    grammar = GRAMMAR_PATH.read_text()
    return Lark(
        grammar,
        parser="lalr",
        start="start",
        propagate_positions=True,
        maybe_placeholders=False,
    )


@dataclass
class GroupNode:
    tokens: List[Token]

    @property
    def labels(self) -> Labels:
        return tuple(str(tok) for tok in self.tokens)


@dataclass
class SubscriptsNodes:
    inputs: List[GroupNode]
    commas: List[Token]
    arrows: List[Token]
    outputs: List[GroupNode]


class SubscriptsTransformer(Transformer):
    def group(self, tokens: Sequence[Token]) -> GroupNode:
        return GroupNode(tokens=list(tokens))

    def inputs(self, children: Sequence[Any]) -> Tuple[List[GroupNode], List[Token]]:
        groups = [child for child in children if isinstance(child, GroupNode)]
        commas = [child for child in children if isinstance(child, Token)]
        return groups, commas

    def start(self, children: Sequence[Any]) -> SubscriptsNodes:
        groups, commas = children[0]
        arrows = [child for child in children[1:] if isinstance(child, Token)]
        outputs = [child for child in children[1:] if isinstance(child, GroupNode)]
        return SubscriptsNodes(inputs=groups, commas=commas, arrows=arrows, outputs=outputs)


def _token_span(token: Token) -> SourceSpan:
    start = token.start_pos + 1
    return SourceSpan(start, start + len(token))


def _empty_group_span(nodes: SubscriptsNodes, position: int, text: str) -> SourceSpan:
    # An empty group sits right before its trailing separator, or at the end.
    if position < len(nodes.commas):
        anchor: Optional[Token] = nodes.commas[position]
    elif nodes.arrows:
        anchor = nodes.arrows[0]
    else:
        anchor = None
    if anchor is None:
        column = len(text.rstrip()) + 1
        return SourceSpan(column, column + 1)
    return _token_span(anchor)


def infer_output(inputs: Sequence[Sequence[str]]) -> Labels:
    """Implicit-mode output: labels occurring exactly once, sorted."""
    counts = {}
    for group in inputs:
        for label in group:
            counts[label] = counts.get(label, 0) + 1
    return tuple(sorted(label for label, count in counts.items() if count == 1))


def parse(text: str) -> Subscripts:
    """Parse einsum notation into :class:`Subscripts`.

    Without ``->`` the output is inferred with :func:`infer_output`.
    """
    if not isinstance(text, str):
        raise TypeError(f"Subscripts must be a string, got {type(text).__name__}")
    ellipsis_at = text.find(ELLIPSIS)
    if ellipsis_at >= 0:
        start = ellipsis_at + 1
        raise UnsupportedFeature(
            "Ellipsis '...' broadcasting is not supported",
            span=SourceSpan(start, start + len(ELLIPSIS)),
            text=text,
        )

    try:
        tree = _build_lark().parse(text)
    except UnexpectedCharacters as exc:
        start = exc.pos_in_stream + 1
        char = text[exc.pos_in_stream] if 0 <= exc.pos_in_stream < len(text) else ""
        raise MalformedSubscripts(
            f"Unrecognized character {char!r}; index labels must be lowercase letters a-z",
            span=SourceSpan(start, start + 1),
            text=text,
        ) from exc
    except UnexpectedInput as exc:
        pos = getattr(exc, "pos_in_stream", None)
        span = None
        if pos is not None and pos >= 0:
            span = SourceSpan(pos + 1, pos + 2)
        raise MalformedSubscripts(f"Invalid subscripts '{text}'", span=span, text=text) from exc
    except LarkError as exc:  # pragma: no cover - grammar construction failure
        raise MalformedSubscripts(f"Invalid subscripts '{text}'", text=text) from exc

    nodes: SubscriptsNodes = SubscriptsTransformer().transform(tree)

    for position, group in enumerate(nodes.inputs):
        if not group.tokens:
            raise MalformedSubscripts(
                f"Index group {position} is empty",
                span=_empty_group_span(nodes, position, text),
                text=text,
            )

    if len(nodes.arrows) > 1:
        raise MalformedSubscripts(
            "'->' may appear at most once",
            span=_token_span(nodes.arrows[1]),
            text=text,
        )

    inputs = tuple(group.labels for group in nodes.inputs)
    if not nodes.arrows:
        output = infer_output(inputs)
        logger.debug("Inferred implicit output '%s' for '%s'", "".join(output), text)
        return Subscripts(inputs=inputs, output=output, explicit=False, text=text)

    output_node = nodes.outputs[0]
    known = {label for group in inputs for label in group}
    for token in output_node.tokens:
        if str(token) not in known:
            raise MalformedSubscripts(
                f"Output index '{token}' does not appear in any input",
                span=_token_span(token),
                text=text,
            )
    return Subscripts(inputs=inputs, output=output_node.labels, explicit=True, text=text)
