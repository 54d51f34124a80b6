from __future__ import annotations

import math

from allocation.policy import AllocationPolicy, all_prerequisites_held, exclusive_groups, fixed_credit_limit


def test_exclusive_groups():
    conflicts = exclusive_groups([["CS101-A", "CS101-B"], ["MA201", "PH110", "CS101-B"]])
    assert conflicts("CS101-A", "CS101-B")
    assert conflicts("PH110", "CS101-B")
    assert not conflicts("CS101-A", "MA201")
    assert not conflicts("CS101-A", "CS101-A")
    assert not conflicts("UNLISTED", "CS101-A")


def test_fixed_credit_limit_defaults_and_overrides():
    limit = fixed_credit_limit(default=18, overrides={"S1": 21})
    assert limit("S1") == 21
    assert limit("S2") == 18
    assert fixed_credit_limit()("anyone") == math.inf


def test_default_policy_is_permissive():
    policy = AllocationPolicy()
    assert not policy.conflicts("A", "B")
    assert policy.credit_limit("S1") == math.inf
    assert policy.prerequisites_met(frozenset({"A"}), frozenset({"A", "B"}))
    assert not all_prerequisites_held(frozenset({"A", "C"}), frozenset({"A"}))
