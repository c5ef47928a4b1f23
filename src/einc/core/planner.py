"""Contraction path planning.

Shapes are unknown while planning, so ordering is structural: it looks only at
which labels the live tensors share, never at dimension sizes.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from .config import CompilerConfig
from .exceptions import GenerationError
from .ir import (
    ContractionPath,
    ContractionStep,
    Labels,
    Namespace,
    Subscripts,
    TensorRef,
    first_occurrence,
)

logger = logging.getLogger(__name__)

Pair = Tuple[int, int]
Cost = Tuple[int, int]


def _pair_key(live: Sequence[Labels], i: int, j: int) -> Tuple[int, int, int, int]:
    shared = len(set(live[i]) & set(live[j]))
    return (-shared, len(live[i]) + len(live[j]), i, j)


def _ranked_pairs(live: Sequence[Labels]) -> List[Pair]:
    pairs = [(i, j) for i in range(len(live)) for j in range(i + 1, len(live))]
    return sorted(pairs, key=lambda pair: _pair_key(live, *pair))


def _split_labels(
    live: Sequence[Labels], i: int, j: int, output: Labels
) -> Tuple[Labels, Labels]:
    """Return ``(summed, residual)`` for contracting ``live[i]`` with ``live[j]``.

    A label survives when the output or any other live tensor still needs it.
    """
    need = set(output)
    for k, labels in enumerate(live):
        if k not in (i, j):
            need.update(labels)
    union = first_occurrence([live[i], live[j]])
    summed = tuple(sorted(label for label in union if label not in need))
    residual = tuple(label for label in union if label in need)
    return summed, residual


def _apply(live: List[Labels], i: int, j: int, residual: Labels) -> List[Labels]:
    updated = list(live)
    updated[i] = residual
    del updated[j]
    return updated


def greedy_order(subscripts: Subscripts) -> List[Pair]:
    """Pick pairs sharing the most labels; ties go to the smaller combined
    group size, then to the leftmost pair."""
    live = list(subscripts.inputs)
    order: List[Pair] = []
    while len(live) > 1:
        i, j = _ranked_pairs(live)[0]
        _, residual = _split_labels(live, i, j, subscripts.output)
        order.append((i, j))
        live = _apply(live, i, j, residual)
    return order


def exhaustive_order(subscripts: Subscripts) -> List[Pair]:
    """Search all pairwise orders for the lowest ``(compute_order, memory_order)``.

    Candidates are explored in greedy rank order and only a strictly better
    cost replaces the incumbent, so ties keep the greedy choice.
    """
    best: List[Optional[Tuple[Cost, List[Pair]]]] = [None]

    def search(live: List[Labels], order: List[Pair], cost: Cost) -> None:
        incumbent = best[0]
        if incumbent is not None and cost >= incumbent[0]:
            return
        if len(live) == 1:
            best[0] = (cost, list(order))
            return
        for i, j in _ranked_pairs(live):
            summed, residual = _split_labels(live, i, j, subscripts.output)
            step_cost = (len(residual) + len(summed), len(residual))
            order.append((i, j))
            search(_apply(live, i, j, residual), order, max(cost, step_cost))
            order.pop()

    search(list(subscripts.inputs), [], (0, 0))
    if best[0] is None:
        raise GenerationError(f"No contraction order found for '{subscripts}'")
    return best[0][1]


def build_path(subscripts: Subscripts, order: Sequence[Pair]) -> ContractionPath:
    """Materialize a pair order into named :class:`ContractionStep` objects."""
    if len(order) != subscripts.num_inputs - 1:
        raise GenerationError(
            f"Contraction order has {len(order)} steps for {subscripts.num_inputs} operands"
        )
    namespace = Namespace()
    live: List[TensorRef] = [
        TensorRef(Namespace.operand(pos), group, operand=pos)
        for pos, group in enumerate(subscripts.inputs)
    ]
    steps: List[ContractionStep] = []
    permutation: Optional[Tuple[int, ...]] = None
    for count, (i, j) in enumerate(order, start=1):
        labels = [tensor.labels for tensor in live]
        summed, residual = _split_labels(labels, i, j, subscripts.output)
        final = count == len(order)
        if final:
            if set(residual) != set(subscripts.output):
                raise GenerationError(
                    f"Final step yields '{''.join(residual)}' but the output is "
                    f"'{''.join(subscripts.output)}'"
                )
            if residual != subscripts.output:
                permutation = tuple(residual.index(label) for label in subscripts.output)
                logger.debug(
                    "Permuting final axes %s -> %s",
                    "".join(residual),
                    "".join(subscripts.output),
                )
            residual = subscripts.output
            name = Namespace.FINAL
        else:
            name = namespace.intermediate()
        result = TensorRef(name, residual)
        step = ContractionStep(left=live[i], right=live[j], summed=summed, result=result)
        logger.debug("Planned step %s (summed: %s)", step, "".join(summed) or "-")
        steps.append(step)
        live[i] = result
        del live[j]
    return ContractionPath(subscripts=subscripts, steps=tuple(steps), permutation=permutation)


def plan_contraction(
    subscripts: Subscripts, config: Optional[CompilerConfig] = None
) -> ContractionPath:
    """Decompose ``subscripts`` into binary contraction steps.

    A single operand yields a path without steps; the generator lowers it
    directly as a diagonal, trace or reduction pass.
    """
    cfg = (config or CompilerConfig()).normalized()
    if subscripts.num_inputs == 1:
        return ContractionPath(subscripts=subscripts, steps=())

    if cfg.strategy == "exhaustive" and subscripts.num_inputs <= cfg.max_exhaustive_operands:
        order = exhaustive_order(subscripts)
    else:
        if cfg.strategy == "exhaustive":
            logger.debug(
                "Exhaustive planning limited to %d operands; using greedy for %d",
                cfg.max_exhaustive_operands,
                subscripts.num_inputs,
            )
        order = greedy_order(subscripts)
    return build_path(subscripts, order)
