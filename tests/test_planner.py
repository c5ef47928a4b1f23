import pytest

from einc import CompilerConfig, GenerationError, parse, plan_contraction
from einc.core.planner import build_path, exhaustive_order, greedy_order


def _describe(text, **kwargs):
    return plan_contraction(parse(text), CompilerConfig(**kwargs)).describe()


def test_chain_factorizes_into_two_binary_steps():
    path = plan_contraction(parse("ij,jk,kl->il"))
    assert len(path) == 2
    assert path.describe() == [
        "ij,jk->ik | arg0,arg1->out1",
        "ik,kl->il | out1,arg2->out0",
    ]
    assert path[0].summed == ("j",)
    assert path[1].summed == ("k",)
    assert path.permutation is None


def test_planning_is_deterministic():
    ss = parse("ij,jk,kl,lm->im")
    assert plan_contraction(ss) == plan_contraction(ss)
    assert plan_contraction(ss).describe() == plan_contraction(parse("ij,jk,kl,lm->im")).describe()


def test_path_has_one_step_fewer_than_operands():
    for text in ["ij,jk->ik", "ij,jk,kl->il", "ab,bc,cd,de,ef->af", "i,j,k,l->ijkl"]:
        ss = parse(text)
        assert len(plan_contraction(ss)) == ss.num_inputs - 1


def test_pair_sharing_most_labels_goes_first():
    assert _describe("ijk,kl,ijm->lm") == [
        "ijk,ijm->km | arg0,arg2->out1",
        "km,kl->lm | out1,arg1->out0",
    ]


def test_ties_prefer_smaller_groups_then_leftmost():
    assert _describe("ij,jkl,jm->iklm")[0] == "ij,jm->ijm | arg0,arg2->out1"
    assert _describe("ij,kl,jk->il")[0] == "ij,jk->ik | arg0,arg2->out1"


def test_final_step_is_permuted_to_declared_order():
    path = plan_contraction(parse("ijk,kl,ijm->lm"))
    assert path.permutation == (1, 0)
    assert path[-1].result.labels == ("l", "m")
    assert path[-1].result.name == "out0"


def test_permutation_for_four_axes():
    path = plan_contraction(parse("ij,jkl,jm->iklm"))
    assert path[-1].result.labels == ("i", "k", "l", "m")
    assert path.permutation == (0, 2, 3, 1)


def test_private_labels_are_summed_in_final_step():
    path = plan_contraction(parse("ij,jk->k"))
    assert path[0].summed == ("i", "j")
    assert path[0].result.labels == ("k",)


def test_scalar_intermediate():
    assert _describe("i,i,j->j") == [
        "i,i-> | arg0,arg1->out1",
        ",j->j | out1,arg2->out0",
    ]


def test_single_operand_has_no_binary_steps():
    path = plan_contraction(parse("ii->i"))
    assert path.is_unary
    assert len(path) == 0
    assert path.describe() == ["ii->i | arg0->out0"]


def test_repeated_label_is_kept_for_generation():
    path = plan_contraction(parse("ii,ij->j"))
    assert path[0].left.labels == ("i", "i")
    assert path[0].summed == ("i",)


def test_orders():
    path = plan_contraction(parse("ij,jk,kl->il"))
    assert path.compute_order() == 3
    assert path.memory_order() == 2
    assert parse("ab,bc->ac").compute_order() == 3
    assert parse("ab,ba->").compute_order() == 2
    assert parse("aa->a").compute_order() == 1


def test_exhaustive_finds_lower_memory_order():
    greedy = plan_contraction(parse("ia,ib,ab->i"))
    assert greedy.describe()[0] == "ia,ib->iab | arg0,arg1->out1"
    exhaustive = plan_contraction(parse("ia,ib,ab->i"), CompilerConfig(strategy="exhaustive"))
    assert exhaustive.describe() == [
        "ia,ab->ib | arg0,arg2->out1",
        "ib,ib->i | out1,arg1->out0",
    ]
    assert (exhaustive.compute_order(), exhaustive.memory_order()) == (3, 2)
    assert (greedy.compute_order(), greedy.memory_order()) == (3, 3)


def test_exhaustive_keeps_greedy_choice_on_ties():
    ss = parse("ij,jk,kl->il")
    assert exhaustive_order(ss) == greedy_order(ss)


def test_exhaustive_falls_back_to_greedy_for_many_operands():
    ss = parse("ab,bc,cd,de->ae")
    cfg = CompilerConfig(strategy="exhaustive", max_exhaustive_operands=3)
    assert plan_contraction(ss, cfg) == plan_contraction(ss)


def test_build_path_rejects_wrong_step_count():
    with pytest.raises(GenerationError):
        build_path(parse("ij,jk,kl->il"), [(0, 1)])


def test_exhaustive_without_candidates_raises(monkeypatch):
    from einc.core import planner

    monkeypatch.setattr(planner, "_ranked_pairs", lambda live: [])
    with pytest.raises(GenerationError, match="No contraction order"):
        exhaustive_order(parse("ij,jk->ik"))
