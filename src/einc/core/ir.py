from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

Labels = Tuple[str, ...]


@dataclass(frozen=True)
class Subscripts:
    """Parsed einsum notation: one label group per operand plus the output group."""

    inputs: Tuple[Labels, ...]
    output: Labels
    explicit: bool = field(default=True, compare=False)
    text: Optional[str] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return ",".join("".join(group) for group in self.inputs) + "->" + "".join(self.output)

    @property
    def num_inputs(self) -> int:
        return len(self.inputs)

    def labels(self) -> List[str]:
        """All labels in order of first appearance (inputs, then output)."""
        ordered: Dict[str, None] = {}
        for group in (*self.inputs, self.output):
            for label in group:
                ordered.setdefault(label, None)
        return list(ordered)

    def label_counts(self) -> Counter:
        counts: Counter = Counter()
        for group in self.inputs:
            counts.update(group)
        return counts

    def summed_labels(self) -> List[str]:
        """Labels that are reduced away, i.e. absent from the output."""
        output = set(self.output)
        return sorted(label for label in self.label_counts() if label not in output)

    def shared_labels(self) -> List[str]:
        """Labels bound by more than one axis across the inputs."""
        return sorted(label for label, count in self.label_counts().items() if count > 1)

    def compute_order(self) -> int:
        """``alpha`` such that evaluating these subscripts costs ``O(N**alpha)``."""
        return self.memory_order() + len(self.summed_labels())

    def memory_order(self) -> int:
        """``beta`` such that the result needs ``O(N**beta)`` storage."""
        return len(self.output)

    def canonical(self) -> "Subscripts":
        """Relabel to ``a``, ``b``, ... in order of first appearance.

        Subscripts that differ only by label names share one canonical form,
        e.g. ``ij,jk,kl->il`` and ``xz,zy,yw->xw`` both become ``ab,bc,cd->ad``.
        """
        mapping = self.canonical_mapping()
        return Subscripts(
            inputs=tuple(tuple(mapping[label] for label in group) for group in self.inputs),
            output=tuple(mapping[label] for label in self.output),
        )

    def canonical_mapping(self) -> Dict[str, str]:
        return {label: chr(ord("a") + pos) for pos, label in enumerate(self.labels())}

    def signature(self) -> str:
        return str(self.canonical())

    def escaped_ident(self) -> str:
        """Identifier-safe rendering, e.g. ``ab_bc__ac`` for ``ab,bc->ac``."""
        parts = ["".join(group) + "_" for group in self.inputs]
        return "".join(parts) + "_" + "".join(self.output)


@dataclass(frozen=True)
class TensorRef:
    """A named tensor inside one expression.

    ``operand`` holds the caller's argument position for user inputs and is
    ``None`` for intermediates produced by a contraction step.
    """

    name: str
    labels: Labels
    operand: Optional[int] = None

    @property
    def is_operand(self) -> bool:
        return self.operand is not None


class Namespace:
    """Issues tensor names for one expression.

    Operands are ``arg0, arg1, ...``; the final result is always ``out0`` and
    intermediates count up from ``out1``.
    """

    FINAL = "out0"

    def __init__(self) -> None:
        self._last = 0

    @staticmethod
    def operand(position: int) -> str:
        return f"arg{position}"

    def intermediate(self) -> str:
        self._last += 1
        return f"out{self._last}"


@dataclass(frozen=True)
class ContractionStep:
    left: TensorRef
    right: TensorRef
    summed: Labels
    result: TensorRef

    @property
    def inputs(self) -> Tuple[TensorRef, TensorRef]:
        return (self.left, self.right)

    def subscripts(self) -> Subscripts:
        return Subscripts(inputs=(self.left.labels, self.right.labels), output=self.result.labels)

    def __str__(self) -> str:
        return f"{self.subscripts()} | {self.left.name},{self.right.name}->{self.result.name}"


@dataclass(frozen=True)
class ContractionPath:
    """Ordered binary steps reducing every operand to the declared output.

    A single-operand expression has no steps; it is lowered directly from
    ``subscripts``. ``permutation`` records how the planner's residual order
    was rearranged into the declared output order (``None`` when they agree).
    """

    subscripts: Subscripts
    steps: Tuple[ContractionStep, ...]
    permutation: Optional[Tuple[int, ...]] = None

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[ContractionStep]:
        return iter(self.steps)

    def __getitem__(self, index: int) -> ContractionStep:
        return self.steps[index]

    @property
    def is_unary(self) -> bool:
        return not self.steps

    def operands(self) -> List[TensorRef]:
        return [
            TensorRef(Namespace.operand(pos), group, operand=pos)
            for pos, group in enumerate(self.subscripts.inputs)
        ]

    def step_subscripts(self) -> List[Subscripts]:
        if self.is_unary:
            return [self.subscripts]
        return [step.subscripts() for step in self.steps]

    def compute_order(self) -> int:
        return max(ss.compute_order() for ss in self.step_subscripts())

    def memory_order(self) -> int:
        return max(ss.memory_order() for ss in self.step_subscripts())

    def describe(self) -> List[str]:
        if self.is_unary:
            return [f"{self.subscripts} | arg0->{Namespace.FINAL}"]
        return [str(step) for step in self.steps]


class OpKind(str, Enum):
    GENERAL_REDUCTION = "general_reduction"
    MATRIX_PRODUCT = "matrix_product"
    DIAGONAL_EXTRACTION = "diagonal_extraction"
    TRACE = "trace"

    @property
    def cacheable(self) -> bool:
        return self in (OpKind.GENERAL_REDUCTION, OpKind.MATRIX_PRODUCT)


def first_occurrence(groups: Sequence[Sequence[str]]) -> Labels:
    ordered: Dict[str, None] = {}
    for group in groups:
        for label in group:
            ordered.setdefault(label, None)
    return tuple(ordered)


def repeated_labels(group: Sequence[str]) -> List[str]:
    counts = Counter(group)
    return [label for label in first_occurrence([group]) if counts[label] > 1]


def json_ready(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (np.integer, np.floating)):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, dict):
        return {str(k): json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_ready(v) for v in value]
    return str(value)
