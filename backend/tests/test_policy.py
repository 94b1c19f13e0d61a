from __future__ import annotations

from pathlib import Path

import pytest

from intel.core.errors import PolicyError
from intel.core.policy import (
    DEFAULT_POLICY,
    FreshnessPolicy,
    apply_env_overrides,
    load_policy,
    policy_from_mapping,
    resolve_policy,
)


BUNDLED_POLICY = Path(__file__).resolve().parents[1] / "intel" / "config" / "policy.yaml"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in ("POLICY_PATH", "COVERAGE_MIN_RECORDS", "STALE_DAYS", "ANOMALY_MIN_REPORT_PCT"):
        monkeypatch.delenv(f"PRICEBENCH_{name}", raising=False)


def _write(tmp_path: Path, text: str) -> Path:
    p = tmp_path / "policy.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_bundled_policy_matches_defaults():
    assert load_policy(BUNDLED_POLICY) == DEFAULT_POLICY


def test_yaml_overrides_only_named_keys(tmp_path):
    policy = load_policy(
        _write(
            tmp_path,
            "freshness:\n  fresh_max_days: 3\nhealth:\n  aging_tolerance: 2\nanomaly:\n  min_report_pct: 5\n",
        )
    )
    assert policy.freshness.fresh_max_days == 3
    assert policy.freshness.aging_max_days == 30
    assert policy.health.aging_tolerance == 2
    assert policy.anomaly.min_report_pct == 5.0
    assert policy.proposal == DEFAULT_POLICY.proposal


def test_empty_file_yields_defaults(tmp_path):
    assert load_policy(_write(tmp_path, "")) == DEFAULT_POLICY


@pytest.mark.parametrize(
    "text",
    [
        "freshnes:\n  fresh_max_days: 3\n",
        "freshness:\n  fresh_days: 3\n",
        "freshness:\n  fresh_max_days: soon\n",
        "health:\n  degrade_on_failed_run: 1\n",
        "freshness:\n  fresh_max_days: 40\n",
        "coverage: 10\n",
        "- just\n- a list\n",
        "freshness: [unclosed\n",
    ],
)
def test_invalid_policy_raises(tmp_path, text):
    with pytest.raises(PolicyError):
        load_policy(_write(tmp_path, text))


def test_missing_file_raises_policy_error(tmp_path):
    with pytest.raises(PolicyError):
        load_policy(tmp_path / "nope.yaml")


def test_sub_policies_validate_on_construction():
    with pytest.raises(PolicyError):
        FreshnessPolicy(fresh_max_days=10, aging_max_days=5)


def test_env_overrides_yaml(tmp_path, monkeypatch):
    path = _write(tmp_path, "coverage:\n  min_records: 4\n  stale_days: 20\n")
    monkeypatch.setenv("PRICEBENCH_POLICY_PATH", str(path))
    monkeypatch.setenv("PRICEBENCH_STALE_DAYS", "45")
    monkeypatch.setenv("PRICEBENCH_ANOMALY_MIN_REPORT_PCT", "7.5")

    policy = resolve_policy()
    assert policy.coverage.min_records == 4
    assert policy.coverage.stale_days == 45
    assert policy.anomaly.min_report_pct == 7.5


def test_bundled_policy_is_the_default_file(tmp_path, monkeypatch):
    assert resolve_policy() == DEFAULT_POLICY

    bundled = _write(tmp_path, "anomaly:\n  min_report_pct: 12\n")
    monkeypatch.setattr("intel.core.policy.BUNDLED_POLICY_PATH", bundled)
    assert resolve_policy().anomaly.min_report_pct == 12

    other = tmp_path / "other.yaml"
    other.write_text("anomaly:\n  min_report_pct: 3\n", encoding="utf-8")
    monkeypatch.setenv("PRICEBENCH_POLICY_PATH", str(other))
    assert resolve_policy().anomaly.min_report_pct == 3

    monkeypatch.setattr("intel.core.policy.BUNDLED_POLICY_PATH", tmp_path / "missing.yaml")
    monkeypatch.delenv("PRICEBENCH_POLICY_PATH")
    assert resolve_policy() == DEFAULT_POLICY


def test_bad_env_value_raises_policy_error(monkeypatch):
    monkeypatch.setenv("PRICEBENCH_COVERAGE_MIN_RECORDS", "ten")
    with pytest.raises(PolicyError):
        apply_env_overrides(DEFAULT_POLICY)


def test_policy_from_mapping_keeps_base():
    base = policy_from_mapping({"coverage": {"min_records": 2}})
    layered = policy_from_mapping({"coverage": {"stale_days": 9}}, base=base)
    assert (layered.coverage.min_records, layered.coverage.stale_days) == (2, 9)
