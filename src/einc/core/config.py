from __future__ import annotations

from dataclasses import dataclass, replace

STRATEGIES = {"greedy", "exhaustive"}


@dataclass(frozen=True)
class CompilerConfig:
    """
    Switches shared by the planner and the generator for one compilation.

    Key behaviors:
    * ``strategy`` selects the contraction planner. ``"greedy"`` is the
      structural heuristic; ``"exhaustive"`` searches every pairwise order for
      the lowest ``(compute_order, memory_order)`` and falls back to greedy
      beyond ``max_exhaustive_operands`` operands.
    * ``special_cases`` toggles matrix-product/diagonal/trace recognition.
      When disabled every step lowers to a general reduction.
    * ``cache_kernels`` toggles reuse of generated kernels across expressions.
    """

    strategy: str = "greedy"  # "greedy" | "exhaustive"
    max_exhaustive_operands: int = 6
    special_cases: bool = True
    cache_kernels: bool = True
    kernel_prefix: str = "_einsum_"

    def normalized(self) -> "CompilerConfig":
        strategy = (self.strategy or "greedy").lower()
        if strategy not in STRATEGIES:
            raise ValueError(f"Unsupported planning strategy: {self.strategy}")
        max_operands = int(self.max_exhaustive_operands)
        if max_operands < 2:
            raise ValueError("max_exhaustive_operands must be at least 2")
        prefix = str(self.kernel_prefix)
        if not (prefix + "x").isidentifier():
            raise ValueError(f"kernel_prefix must start a valid identifier: {self.kernel_prefix!r}")
        return replace(
            self,
            strategy=strategy,
            max_exhaustive_operands=max_operands,
            special_cases=bool(self.special_cases),
            cache_kernels=bool(self.cache_kernels),
            kernel_prefix=prefix,
        )
