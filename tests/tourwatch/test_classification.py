import itertools

import pytest

from tourwatch.classification import Severity, classify, impact_tags


@pytest.mark.parametrize("safety,time_,money", list(itertools.product([False, True], repeat=3)))
def test_classify_truth_table(safety, time_, money):
    result = classify(safety, time_, money)
    if safety or money:
        assert result == Severity.CRITICAL
    elif time_:
        assert result == Severity.IMPORTANT
    else:
        assert result == Severity.INFO
    # deterministic
    assert classify(safety, time_, money) == result


def test_explicit_override_wins():
    assert classify(True, False, False, Severity.INFO) == Severity.INFO
    assert classify(False, False, False, "critical") == Severity.CRITICAL


def test_unknown_override_is_ignored():
    assert classify(False, True, False, "URGENT") == Severity.IMPORTANT


def test_rank_ordering():
    assert Severity.INFO.rank < Severity.IMPORTANT.rank < Severity.CRITICAL.rank


def test_impact_tags_follow_flag_order():
    class Row:
        affects_safety = True
        affects_time = False
        affects_money = True

    assert impact_tags(Row()) == ["🛡️ SAFETY", "💰 MONEY"]
