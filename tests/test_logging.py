"""Tests for structured logging configuration."""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from einc import Compilation, configure_logging


@pytest.fixture(autouse=True)
def reset_logging() -> None:
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.WARNING)


def test_configure_logging_console_output() -> None:
    configure_logging(json_output=False, level="INFO")
    assert logging.getLogger().level == logging.INFO
    assert len(logging.getLogger().handlers) == 1


def test_configure_logging_json_output() -> None:
    captured = io.StringIO()
    configure_logging(json_output=True, level="INFO", stream=captured)

    log = structlog.get_logger("test_json")
    log.info("compiled", subscripts="ij,jk->ik")

    data = json.loads(captured.getvalue().strip())
    assert data["event"] == "compiled"
    assert data["subscripts"] == "ij,jk->ik"
    assert data["level"] == "info"
    assert "timestamp" in data


@pytest.mark.parametrize("level", ["DEBUG", "WARNING", "ERROR"])
def test_configure_logging_levels(level: str) -> None:
    configure_logging(json_output=False, level=level)
    assert logging.getLogger().level == getattr(logging, level)


def test_compiler_debug_messages_reach_root_handler() -> None:
    captured = io.StringIO()
    configure_logging(json_output=False, level="DEBUG", stream=captured)

    unit = Compilation()
    unit.compile("ij,jk->ik", 2)
    unit.compile("ab,bc->ac", 2)

    output = captured.getvalue()
    assert "Pattern cache miss for matrix_product:_einsum_ab_bc__ac:ab,bc->ac" in output
    assert "Pattern cache hit for matrix_product:_einsum_ab_bc__ac:ab,bc->ac" in output


def test_core_module_records_render_as_json() -> None:
    captured = io.StringIO()
    configure_logging(json_output=True, level="DEBUG", stream=captured)

    Compilation().compile("ij,jk->ik", 2)

    events = [json.loads(line) for line in captured.getvalue().splitlines() if line.strip()]
    misses = [e for e in events if e["event"].startswith("Pattern cache miss")]
    assert len(misses) == 1
    assert misses[0]["logger"] == "einc.core.cache"
    assert misses[0]["level"] == "debug"
    assert "timestamp" in misses[0]
