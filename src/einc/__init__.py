from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _load_version

from .core.cache import PatternCache
from .core.codegen import GeneratedKernel, GeneratedOp, classify_step, generate
from .core.config import CompilerConfig
from .core.exceptions import (
    ArityMismatch,
    Diagnostic,
    DuplicateOutputIndex,
    EinsumError,
    ErrorKind,
    GenerationError,
    MalformedSubscripts,
    ShapeMismatch,
    SourceSpan,
    UnsupportedFeature,
)
from .core.ir import ContractionPath, ContractionStep, OpKind, Subscripts, TensorRef
from .core.logging import configure_logging
from .core.parser import parse
from .core.planner import plan_contraction
from .core.program import (
    Compilation,
    CompiledEinsum,
    ExpansionResult,
    compile_einsum,
    einsum,
)
from .core.validator import validate_subscripts

try:
    __version__ = _load_version("einc")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "Compilation",
    "CompiledEinsum",
    "CompilerConfig",
    "ExpansionResult",
    "compile_einsum",
    "einsum",
    "parse",
    "validate_subscripts",
    "plan_contraction",
    "generate",
    "classify_step",
    "PatternCache",
    "GeneratedKernel",
    "GeneratedOp",
    "Subscripts",
    "TensorRef",
    "ContractionStep",
    "ContractionPath",
    "OpKind",
    "EinsumError",
    "ErrorKind",
    "SourceSpan",
    "Diagnostic",
    "MalformedSubscripts",
    "UnsupportedFeature",
    "ArityMismatch",
    "DuplicateOutputIndex",
    "ShapeMismatch",
    "GenerationError",
    "configure_logging",
    "__version__",
]
