from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

import numpy as np

from .core.config import CompilerConfig
from .core.exceptions import Diagnostic, EinsumError
from .core.logging import configure_logging, get_logger
from .core.parser import parse
from .core.program import Compilation
from .core.stats import bind_sizes, path_stats


def _parse_shape(text: str) -> List[int]:
    text = text.strip()
    if not text:
        return []
    try:
        return [int(part) for part in text.split(",")]
    except ValueError as exc:
        raise SystemExit(f"Invalid shape '{text}'; expected comma separated integers") from exc


def _load_operand(path: Path) -> np.ndarray:
    try:
        if str(path).lower().endswith(".json"):
            return np.asarray(json.loads(path.read_text(encoding="utf-8")))
        return np.load(path, allow_pickle=False)
    except FileNotFoundError as exc:
        raise SystemExit(f"Operand file not found: {path}") from exc


def _write_output(path: Path, tensor: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if str(path).lower().endswith(".json"):
        path.write_text(json.dumps(np.asarray(tensor).tolist(), indent=2), encoding="utf-8")
    else:
        np.save(path, np.asarray(tensor))


def _config(args: argparse.Namespace) -> CompilerConfig:
    return CompilerConfig(strategy=args.strategy, special_cases=not args.no_special_cases)


def _explain(args: argparse.Namespace) -> None:
    log = get_logger("einc.cli")
    operands = args.operands
    if operands is None:
        operands = parse(args.subscripts).num_inputs
    compilation = Compilation(_config(args))
    compiled = compilation.compile(args.subscripts, operands)
    log.info("compiled", subscripts=str(compiled.subscripts), steps=len(compiled.operations))

    if args.json:
        payload = compiled.explain(json=True)
        if args.shape:
            sizes = bind_sizes(compiled.subscripts, [_parse_shape(s) for s in args.shape])
            payload["stats"] = path_stats(compiled.path, sizes)
        print(json.dumps(payload, indent=2))
        return

    print(compiled.explain())
    if args.shape:
        sizes = bind_sizes(compiled.subscripts, [_parse_shape(s) for s in args.shape])
        for text, entry in zip(compiled.path.describe(), path_stats(compiled.path, sizes)):
            print(f"[cost] {text} flops={int(entry['flops'])} out={entry['elements_out']}")
    print()
    print(compiled.source, end="")


def _run(args: argparse.Namespace) -> None:
    log = get_logger("einc.cli")
    operands = [_load_operand(path) for path in args.operands]
    compilation = Compilation(_config(args))
    result = compilation.einsum(args.subscripts, *operands)
    log.info("evaluated", subscripts=args.subscripts, shape=list(np.shape(result)))
    if args.out is None:
        np.set_printoptions(suppress=True)
        print(np.asarray(result))
        return
    _write_output(args.out, result)


def _add_planning_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--strategy",
        default="greedy",
        choices=["greedy", "exhaustive"],
        help="Contraction ordering strategy (default: greedy)",
    )
    parser.add_argument(
        "--no-special-cases",
        action="store_true",
        help="Lower every step as a general reduction",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="einc einsum compiler utilities")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    subparsers = parser.add_subparsers(dest="cmd")

    explain_parser = subparsers.add_parser("explain", help="Show the plan and generated code")
    explain_parser.add_argument("subscripts", help="Einsum subscripts, e.g. 'ij,jk->ik'")
    explain_parser.add_argument(
        "--operands",
        type=int,
        default=None,
        help="Number of operands supplied (default: one per input group)",
    )
    explain_parser.add_argument(
        "--shape",
        action="append",
        default=None,
        help="Operand shape as comma separated sizes; repeat once per operand",
    )
    explain_parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    _add_planning_flags(explain_parser)

    run_parser = subparsers.add_parser("run", help="Evaluate subscripts over .npy/.json operands")
    run_parser.add_argument("subscripts", help="Einsum subscripts, e.g. 'ij,jk->ik'")
    run_parser.add_argument("operands", type=Path, nargs="*", help="Operand files (.npy/.json)")
    run_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Optional output path (.npy/.json). If omitted, prints the result",
    )
    _add_planning_flags(run_parser)
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(json_output=args.json_logs, level=args.log_level)

    commands = {"explain": _explain, "run": _run}
    command = commands.get(args.cmd)
    if command is None:
        parser.print_help()
        return
    try:
        command(args)
    except EinsumError as exc:
        print(Diagnostic.from_error(exc).render(), file=sys.stderr)
        raise SystemExit(2) from exc


if __name__ == "__main__":  # pragma: no cover
    main(sys.argv[1:])
