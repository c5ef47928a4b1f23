from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .cache import PatternCache, compute_source_hash
from .codegen import GeneratedKernel, GeneratedOp, emit_source, generate
from .config import CompilerConfig
from .exceptions import ArityMismatch, Diagnostic, EinsumError, SourceSpan
from .ir import ContractionPath, Subscripts, json_ready
from .parser import parse
from .planner import plan_contraction
from .validator import validate_subscripts

logger = logging.getLogger(__name__)

ENTRY_NAME = "einsum_expr"


class CompiledEinsum:
    """Executable form of one einsum expression."""

    def __init__(
        self,
        subscripts: Subscripts,
        path: ContractionPath,
        operations: List[GeneratedOp],
    ):
        self.subscripts = subscripts
        self.path = path
        self.operations = operations
        self.source, self._entry_source = emit_source(ENTRY_NAME, path, operations)
        self.digest = compute_source_hash(self.source)
        self._function: Optional[Callable[..., Any]] = None

    @property
    def num_operands(self) -> int:
        return self.subscripts.num_inputs

    @property
    def kernels(self) -> List[GeneratedKernel]:
        unique: Dict[str, GeneratedKernel] = {}
        for op in self.operations:
            unique.setdefault(op.kernel.name, op.kernel)
        return list(unique.values())

    def function(self) -> Callable[..., Any]:
        if self._function is None:
            namespace: Dict[str, Any] = {k.name: k.function() for k in self.kernels}
            code = compile(self._entry_source, f"<einc:{self.subscripts}>", "exec")
            exec(code, namespace)
            self._function = namespace[ENTRY_NAME]
        return self._function

    def __call__(self, *operands: Any) -> Any:
        if len(operands) != self.num_operands:
            raise ArityMismatch(
                f"Argument number mismatch: subscripts ({self.num_operands}), args ({len(operands)})",
                expected=self.num_operands,
                actual=len(operands),
            )
        arrays = [op if hasattr(op, "shape") else np.asarray(op) for op in operands]
        return self.function()(*arrays)

    def explain(self, *, json: bool = False) -> Any:
        payload = {
            "subscripts": str(self.subscripts),
            "digest": self.digest,
            "compute_order": self.path.compute_order(),
            "memory_order": self.path.memory_order(),
            "permutation": self.path.permutation,
            "steps": [
                {
                    "step": str(op.subscripts()),
                    "inputs": [t.name for t in op.inputs],
                    "result": op.result.name,
                    "kind": op.kind.value,
                    "kernel": op.kernel.name,
                    "reused": op.reused,
                }
                for op in self.operations
            ],
        }
        if json:
            return json_ready(payload)

        lines: List[str] = [f"[einsum] {self.subscripts}"]
        for entry, text in zip(payload["steps"], self.path.describe()):
            reuse = " (reused)" if entry["reused"] else ""
            lines.append(f"[step] {text} kind={entry['kind']} kernel={entry['kernel']}{reuse}")
        if self.path.permutation is not None:
            perm = ",".join(str(axis) for axis in self.path.permutation)
            lines.append(f"[permute] axes=({perm})")
        lines.append(
            f"[order] compute=O(N^{payload['compute_order']}) memory=O(N^{payload['memory_order']})"
        )
        return "\n".join(lines)


@dataclass(frozen=True)
class ExpansionResult:
    compiled: Optional[CompiledEinsum] = None
    diagnostic: Optional[Diagnostic] = None

    @property
    def ok(self) -> bool:
        return self.compiled is not None


def compile_einsum(
    subscripts: str,
    num_operands: int,
    *,
    cache: Optional[PatternCache] = None,
    config: Optional[CompilerConfig] = None,
) -> CompiledEinsum:
    """Parse, validate, plan and lower one expression.

    ``cache`` is the pattern cache of the surrounding compilation; pass
    ``None`` to generate every kernel afresh.
    """
    cfg = (config or CompilerConfig()).normalized()
    parsed = parse(subscripts)
    validate_subscripts(parsed, num_operands)
    path = plan_contraction(parsed, cfg)
    operations = generate(path, cache, cfg)
    compiled = CompiledEinsum(parsed, path, operations)
    # Compile kernels now; bad source raises GenerationError.
    compiled.function()
    return compiled


class Compilation:
    """One translation unit: expressions compiled here share a pattern cache.

    Call :meth:`reset` (or create a new instance) before an unrelated build so
    no kernels leak between them.
    """

    def __init__(self, config: Optional[CompilerConfig] = None):
        self.config = (config or CompilerConfig()).normalized()
        self.cache = PatternCache()
        self.diagnostics: List[Diagnostic] = []
        self._expressions: Dict[Tuple[str, int], CompiledEinsum] = {}

    def reset(self) -> None:
        logger.debug(
            "Resetting compilation (%d kernels, %d expressions)",
            len(self.cache),
            len(self._expressions),
        )
        self.cache.clear()
        self.diagnostics.clear()
        self._expressions.clear()

    def compile(
        self,
        subscripts: str,
        num_operands: int,
        *,
        filename: Optional[str] = None,
        line: Optional[int] = None,
    ) -> CompiledEinsum:
        key = (subscripts, num_operands)
        compiled = self._expressions.get(key)
        if compiled is not None:
            return compiled
        try:
            compiled = compile_einsum(
                subscripts, num_operands, cache=self.cache, config=self.config
            )
        except EinsumError as exc:
            if filename is not None or line is not None:
                span = exc.span or SourceSpan(1, len(subscripts) + 1)
                exc.span = span.at_call_site(filename, line)
            raise
        self._expressions[key] = compiled
        return compiled

    def try_compile(
        self,
        subscripts: str,
        num_operands: int,
        *,
        filename: Optional[str] = None,
        line: Optional[int] = None,
    ) -> ExpansionResult:
        """Like :meth:`compile`, but record failures instead of raising.

        A failing expression never prevents others in the same compilation
        from being expanded.
        """
        try:
            compiled = self.compile(subscripts, num_operands, filename=filename, line=line)
        except EinsumError as exc:
            diagnostic = Diagnostic.from_error(exc)
            self.diagnostics.append(diagnostic)
            logger.debug("Expansion of '%s' failed: %s", subscripts, diagnostic.message)
            return ExpansionResult(diagnostic=diagnostic)
        return ExpansionResult(compiled=compiled)

    def einsum(self, subscripts: str, *operands: Any) -> Any:
        return self.compile(subscripts, len(operands))(*operands)

    def kernels(self) -> List[GeneratedKernel]:
        return self.cache.kernels()


def einsum(subscripts: str, *operands: Any, compilation: Optional[Compilation] = None) -> Any:
    """Evaluate ``subscripts`` over ``operands`` through generated loop kernels.

    Without ``compilation`` a fresh one is used for this call alone.
    """
    unit = compilation if compilation is not None else Compilation()
    return unit.einsum(subscripts, *operands)
