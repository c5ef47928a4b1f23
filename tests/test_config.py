import pytest

from einc import CompilerConfig, compile_einsum


def test_normalization_lowercases_strategy():
    cfg = CompilerConfig(strategy="EXHAUSTIVE", special_cases=0, cache_kernels=1).normalized()
    assert cfg.strategy == "exhaustive"
    assert cfg.special_cases is False
    assert cfg.cache_kernels is True


def test_empty_strategy_defaults_to_greedy():
    assert CompilerConfig(strategy="").normalized().strategy == "greedy"


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValueError, match="Unsupported planning strategy"):
        CompilerConfig(strategy="dynamic").normalized()


def test_exhaustive_operand_limit_is_checked():
    with pytest.raises(ValueError, match="at least 2"):
        CompilerConfig(max_exhaustive_operands=1).normalized()


def test_kernel_prefix_must_be_identifier():
    with pytest.raises(ValueError, match="kernel_prefix"):
        CompilerConfig(kernel_prefix="1bad").normalized()


def test_compile_applies_config():
    compiled = compile_einsum("ij,jk->ik", 2, config=CompilerConfig(kernel_prefix="mm_"))
    assert compiled.kernels[0].name == "mm_ab_bc__ac"
    assert "def mm_ab_bc__ac(" in compiled.source
