from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from .exceptions import ShapeMismatch
from .ir import ContractionPath, Subscripts


def _prod(values: Iterable[int]) -> int:
    result = 1
    for value in values:
        result *= int(max(1, value))
    return int(result)


def bind_sizes(subscripts: Subscripts, shapes: Sequence[Sequence[int]]) -> Dict[str, int]:
    """Map each label to its size, checking agreement like generated kernels do."""
    if len(shapes) != subscripts.num_inputs:
        raise ValueError("Operand shape list does not match einsum inputs")
    sizes: Dict[str, int] = {}
    for position, (group, shape) in enumerate(zip(subscripts.inputs, shapes)):
        if len(group) != len(shape):
            raise ShapeMismatch(
                f"Operand arg{position} has {len(shape)} axes but subscript "
                f"'{''.join(group)}' expects {len(group)}",
                expected=len(group),
                actual=len(shape),
            )
        for axis, (label, dim) in enumerate(zip(group, shape)):
            dim = int(dim)
            if label in sizes and sizes[label] != dim:
                raise ShapeMismatch(
                    f"Size of index '{label}' disagrees: {sizes[label]} vs {dim} "
                    f"(axis {axis} of arg{position})",
                    label=label,
                    expected=sizes[label],
                    actual=dim,
                )
            sizes[label] = dim
    return sizes


def step_stats(subscripts: Subscripts, sizes: Mapping[str, int]) -> Dict[str, float]:
    output_size = _prod(sizes[label] for label in subscripts.output)
    summed = subscripts.summed_labels()
    contract_size = _prod(sizes[label] for label in summed)
    factors = max(subscripts.num_inputs - 1, 0)
    if summed:
        flops = float((factors + 1) * output_size * contract_size)
    else:
        flops = float(factors * output_size)
    return {
        "flops": flops,
        "elements_in": sum(_prod(sizes[label] for label in group) for group in subscripts.inputs),
        "elements_out": output_size,
        "summed": summed,
    }


def path_stats(path: ContractionPath, sizes: Mapping[str, int]) -> List[Dict[str, float]]:
    """Estimated multiply/add counts and element counts for each step of ``path``."""
    return [step_stats(ss, sizes) for ss in path.step_subscripts()]
