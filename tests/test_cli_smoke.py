from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path

import numpy as np
import pytest
import structlog

from einc.__main__ import main


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def test_explain_prints_plan_cost_and_source(capsys):
    main(["explain", "ij,jk->ik", "--shape", "2,3", "--shape", "3,4"])
    out = capsys.readouterr().out
    assert "[einsum] ij,jk->ik" in out
    assert "[cost] ij,jk->ik | arg0,arg1->out0 flops=48 out=8" in out
    assert "def _einsum_ab_bc__ac(arg0, arg1, labels):" in out
    assert "def einsum_expr(arg0, arg1):" in out


def test_explain_json(capsys):
    main(["explain", "ij,jk,kl->il", "--json", "--strategy", "exhaustive"])
    payload = json.loads(capsys.readouterr().out)
    assert [step["result"] for step in payload["steps"]] == ["out1", "out0"]
    assert payload["compute_order"] == 3


def test_explain_error_exits_with_diagnostic(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["explain", "ij->ii"])
    assert exc.value.code == 2
    err = capsys.readouterr().err
    assert "error[duplicate_output_index]" in err
    assert "Output index 'i' appears more than once" in err


def test_explain_arity_error(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["explain", "ij,jk->ik", "--operands", "3"])
    assert exc.value.code == 2
    assert "error[arity_mismatch]" in capsys.readouterr().err


def test_run_writes_json_output(tmp_path: Path):
    lhs = tmp_path / "a.npy"
    rhs = tmp_path / "b.json"
    np.save(lhs, np.array([[1, 2], [3, 4]]))
    rhs.write_text(json.dumps([[1, 2], [3, 4]]), encoding="utf-8")
    out = tmp_path / "out" / "c.json"
    main(["run", "ij,jk->ik", str(lhs), str(rhs), "--out", str(out)])
    assert json.loads(out.read_text(encoding="utf-8")) == [[7, 10], [15, 22]]


def test_run_reports_size_mismatch(tmp_path: Path, capsys):
    lhs = tmp_path / "a.npy"
    rhs = tmp_path / "b.npy"
    np.save(lhs, np.ones((2, 3)))
    np.save(rhs, np.ones((2, 2)))
    with pytest.raises(SystemExit) as exc:
        main(["run", "ij,jk->ik", str(lhs), str(rhs)])
    assert exc.value.code == 2
    assert "error[shape_mismatch]: Size of index 'j' disagrees: 3 vs 2" in capsys.readouterr().err


def test_cli_module_smoke():
    proc = subprocess.run(
        ["python", "-m", "einc", "explain", "ij,jk->ik"],
        env=os.environ.copy(),
        capture_output=True,
        text=True,
        check=False,
    )
    if proc.returncode != 0:
        pytest.fail(f"CLI failed: {proc.returncode}\n{proc.stdout}\n{proc.stderr}")
    assert "return out0" in proc.stdout
