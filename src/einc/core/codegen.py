"""Lowering of contraction paths into Python kernel source.

Every operation becomes a small function over canonical labels, e.g. the
matrix product ``ij,jk->ik`` lowers to ``_einsum_ab_bc__ac(arg0, arg1, labels)``
where ``labels`` carries the caller's letters (``"ijk"``) for runtime
diagnostics only. Structurally identical steps therefore share one kernel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .cache import PatternCache
from .config import CompilerConfig
from .exceptions import GenerationError
from .ir import (
    ContractionPath,
    Labels,
    Namespace,
    OpKind,
    Subscripts,
    TensorRef,
    repeated_labels,
)
from .runtime import kernel_namespace

logger = logging.getLogger(__name__)

INDENT = "    "

# CPython rejects more than 20 statically nested blocks in one function.
MAX_NESTED_LOOPS = 18


@dataclass(eq=False)
class GeneratedKernel:
    """One emitted operation body, shared by reference between call sites."""

    name: str
    kind: OpKind
    signature: str
    source: str
    _function: Optional[Callable] = field(default=None, repr=False)

    def function(self) -> Callable:
        if self._function is None:
            try:
                code = compile(self.source, f"<einc:{self.name}>", "exec")
            except SyntaxError as exc:
                raise GenerationError(
                    f"Kernel {self.name} for '{self.signature}' does not compile: {exc.msg}"
                ) from exc
            namespace = kernel_namespace()
            exec(code, namespace)
            self._function = namespace[self.name]
        return self._function


@dataclass(frozen=True)
class GeneratedOp:
    kind: OpKind
    kernel: GeneratedKernel
    inputs: Tuple[TensorRef, ...]
    result: TensorRef
    labels: str
    reused: bool = False

    def subscripts(self) -> Subscripts:
        return Subscripts(inputs=tuple(t.labels for t in self.inputs), output=self.result.labels)

    def call_source(self) -> str:
        args = ", ".join(t.name for t in self.inputs)
        return f"{self.result.name} = {self.kernel.name}({args}, {self.labels!r})"


# ---------------------------------------------------------------- classification


def is_matrix_product(subscripts: Subscripts) -> bool:
    if subscripts.num_inputs != 2:
        return False
    left, right = subscripts.inputs
    if len(left) != 2 or len(right) != 2:
        return False
    if len(set(left)) != 2 or len(set(right)) != 2:
        return False
    shared = set(left) & set(right)
    if len(shared) != 1:
        return False
    (label,) = shared
    if label in subscripts.output:
        return False
    free = (set(left) | set(right)) - shared
    return len(subscripts.output) == 2 and set(subscripts.output) == free


def classify_step(subscripts: Subscripts, special_cases: bool = True) -> OpKind:
    if not special_cases:
        return OpKind.GENERAL_REDUCTION
    if subscripts.num_inputs == 2:
        if is_matrix_product(subscripts):
            return OpKind.MATRIX_PRODUCT
        return OpKind.GENERAL_REDUCTION
    if subscripts.num_inputs != 1:
        return OpKind.GENERAL_REDUCTION
    repeats = repeated_labels(subscripts.inputs[0])
    if not repeats:
        return OpKind.GENERAL_REDUCTION
    if not subscripts.summed_labels():
        return OpKind.DIAGONAL_EXTRACTION
    if any(label not in subscripts.output for label in repeats):
        return OpKind.TRACE
    return OpKind.GENERAL_REDUCTION


# ---------------------------------------------------------------- kernel source


def _index(name: str, labels: Sequence[str]) -> str:
    if not labels:
        return f"{name}[()]"
    return f"{name}[{', '.join(labels)}]"


def _shape(labels: Sequence[str]) -> str:
    sizes = [f"n_{label}" for label in labels]
    if len(sizes) == 1:
        return f"({sizes[0]},)"
    return f"({', '.join(sizes)})"


class _Writer:
    def __init__(self) -> None:
        self.lines: List[str] = []
        self.depth = 0

    def line(self, text: str) -> None:
        self.lines.append(INDENT * self.depth + text)

    def open_loop(self, label: str) -> None:
        self.line(f"for {label} in range(n_{label}):")
        self.depth += 1

    def open_loops(self, labels: Sequence[str], flat: bool = False) -> None:
        """Open one loop per label, or a single ``_product`` loop when ``flat``."""
        if not flat or len(labels) < 2:
            for label in labels:
                self.open_loop(label)
            return
        ranges = ", ".join(f"range(n_{label})" for label in labels)
        self.line(f"for {', '.join(labels)} in _product({ranges}):")
        self.depth += 1

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


def _emit_prologue(out: _Writer, canonical: Subscripts, args: Sequence[str]) -> None:
    bound = set()
    for name, group in zip(args, canonical.inputs):
        out.line(f"_rank({name}, {len(group)}, {name!r}, {''.join(group)!r}, labels)")
        for axis, label in enumerate(group):
            if label in bound:
                out.line(f"_dim(labels, {label!r}, n_{label}, {name}.shape[{axis}], {name!r}, {axis})")
            else:
                out.line(f"n_{label} = {name}.shape[{axis}]")
                bound.add(label)
    out.line(f"out = _zeros({_shape(canonical.output)}, {', '.join(args)})")


def _emit_reduction(out: _Writer, canonical: Subscripts, args: Sequence[str]) -> None:
    summed = canonical.summed_labels()
    flat = len(canonical.output) + len(summed) > MAX_NESTED_LOOPS
    out.open_loops(canonical.output, flat)
    product = " * ".join(_index(name, group) for name, group in zip(args, canonical.inputs))
    target = _index("out", canonical.output)
    if not summed:
        out.line(f"{target} = {product}")
        return
    out.line("acc = 0")
    base = out.depth
    out.open_loops(summed, flat)
    out.line(f"acc += {product}")
    out.depth = base
    out.line(f"{target} = acc")


def _emit_matrix_product(out: _Writer, canonical: Subscripts, args: Sequence[str]) -> None:
    left, right = canonical.inputs
    (shared,) = set(left) & set(right)
    row = next(label for label in left if label != shared)
    col = next(label for label in right if label != shared)
    out.open_loop(row)
    out.open_loop(shared)
    out.line(f"lhs = {_index(args[0], left)}")
    out.open_loop(col)
    target = _index("out", canonical.output)
    out.line(f"{target} += lhs * {_index(args[1], right)}")


def _emit_diagonal(out: _Writer, canonical: Subscripts, args: Sequence[str]) -> None:
    out.open_loops(canonical.output, len(canonical.output) > MAX_NESTED_LOOPS)
    out.line(f"{_index('out', canonical.output)} = {_index(args[0], canonical.inputs[0])}")


_BODIES = {
    OpKind.GENERAL_REDUCTION: _emit_reduction,
    OpKind.MATRIX_PRODUCT: _emit_matrix_product,
    OpKind.DIAGONAL_EXTRACTION: _emit_diagonal,
    OpKind.TRACE: _emit_reduction,
}


def kernel_name(canonical: Subscripts, prefix: str) -> str:
    return f"{prefix}{canonical.escaped_ident()}"


def cache_key(canonical: Subscripts, kind: OpKind, prefix: str) -> str:
    """Pattern-cache key; the body and name depend on kind and prefix, not only labels."""
    return f"{kind.value}:{kernel_name(canonical, prefix)}:{canonical}"


def build_kernel(canonical: Subscripts, kind: OpKind, prefix: str) -> GeneratedKernel:
    """Emit the source of one kernel for canonical subscripts."""
    name = kernel_name(canonical, prefix)
    args = [Namespace.operand(pos) for pos in range(canonical.num_inputs)]
    out = _Writer()
    out.line(f"def {name}({', '.join(args)}, labels):")
    out.depth = 1
    out.line(f"# {kind.value}: {canonical}")
    _emit_prologue(out, canonical, args)
    _BODIES[kind](out, canonical, args)
    out.depth = 1
    out.line("return out")
    return GeneratedKernel(name=name, kind=kind, signature=str(canonical), source=out.text())


# ---------------------------------------------------------------- lowering


def _lower(
    subscripts: Subscripts,
    inputs: Tuple[TensorRef, ...],
    result: TensorRef,
    cache: Optional[PatternCache],
    cfg: CompilerConfig,
) -> GeneratedOp:
    kind = classify_step(subscripts, cfg.special_cases)
    canonical = subscripts.canonical()
    labels = "".join(subscripts.labels())
    reused = False
    if kind.cacheable and cache is not None and cfg.cache_kernels:
        kernel, reused = cache.get_or_create(
            cache_key(canonical, kind, cfg.kernel_prefix),
            lambda: build_kernel(canonical, kind, cfg.kernel_prefix),
        )
    else:
        kernel = build_kernel(canonical, kind, cfg.kernel_prefix)
    logger.debug(
        "Lowered %s as %s%s", subscripts, kind.value, " (reused kernel)" if reused else ""
    )
    return GeneratedOp(
        kind=kind, kernel=kernel, inputs=inputs, result=result, labels=labels, reused=reused
    )


def _check_path(path: ContractionPath) -> None:
    """Verify every step consumes live tensors and the last one yields the output."""
    live: Dict[str, Labels] = {t.name: t.labels for t in path.operands()}
    for position, step in enumerate(path.steps):
        for tensor in step.inputs:
            if live.get(tensor.name) != tensor.labels:
                raise GenerationError(
                    f"Step {position} ({step}) reads '{tensor.name}' which is not a live tensor"
                )
        if step.left.name == step.right.name:
            raise GenerationError(f"Step {position} ({step}) contracts a tensor with itself")
        available = set(step.left.labels) | set(step.right.labels)
        if not set(step.result.labels) <= available:
            raise GenerationError(f"Step {position} ({step}) produces unknown labels")
        del live[step.left.name]
        del live[step.right.name]
        live[step.result.name] = step.result.labels
    if list(live) != [Namespace.FINAL] or live[Namespace.FINAL] != path.subscripts.output:
        raise GenerationError(
            f"Path for '{path.subscripts}' does not end in the declared output"
        )


def generate(
    path: ContractionPath,
    cache: Optional[PatternCache] = None,
    config: Optional[CompilerConfig] = None,
) -> List[GeneratedOp]:
    """Lower each step of ``path`` to a :class:`GeneratedOp`, in order.

    General-reduction and matrix-product kernels are looked up in ``cache``
    by canonical signature; diagonal and trace kernels are always emitted.
    """
    cfg = (config or CompilerConfig()).normalized()
    if path.is_unary:
        (operand,) = path.operands()
        result = TensorRef(Namespace.FINAL, path.subscripts.output)
        return [_lower(path.subscripts, (operand,), result, cache, cfg)]
    _check_path(path)
    return [
        _lower(step.subscripts(), step.inputs, step.result, cache, cfg) for step in path.steps
    ]


def emit_source(
    entry: str, path: ContractionPath, operations: Sequence[GeneratedOp]
) -> Tuple[str, str]:
    """Return ``(module_source, entry_source)`` for one expression.

    ``module_source`` lists each distinct kernel once followed by the entry
    function; ``entry_source`` holds only the entry function.
    """
    kernels: Dict[str, GeneratedKernel] = {}
    for op in operations:
        kernels.setdefault(op.kernel.name, op.kernel)
    args = ", ".join(t.name for t in path.operands())
    body = _Writer()
    body.line(f"def {entry}({args}):")
    body.depth = 1
    body.line(f"# einsum: {path.subscripts}")
    for op in operations:
        body.line(op.call_source())
    body.line(f"return {Namespace.FINAL}")
    entry_source = body.text()
    parts = [kernel.source for kernel in kernels.values()]
    parts.append(entry_source)
    return "\n\n".join(parts), entry_source
