"""Engine policy: every threshold as named configuration.

Defaults reproduce the documented behavior. A YAML file may override any
value per section; `PRICEBENCH_*` environment variables override the file.

Example policy.yaml:

    freshness:
      fresh_max_days: 7
      aging_max_days: 30
    health:
      aging_tolerance: 1
    coverage:
      min_records: 10
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from app.core.env import env_float, env_int, env_str
from intel.core.errors import PolicyError


@dataclass(frozen=True, slots=True)
class ProposalPolicy:
    min_evidence_count: int = 3
    publish_min_evidence: int = 5
    publish_min_diversity: int = 2
    publish_min_confidence: int = 40
    recent_max_days: int = 90
    mid_max_days: int = 365

    def __post_init__(self) -> None:
        if self.min_evidence_count < 1:
            raise PolicyError("proposal.min_evidence_count must be >= 1")
        if not 0 <= self.publish_min_confidence <= 100:
            raise PolicyError("proposal.publish_min_confidence must be within 0..100")
        if self.recent_max_days >= self.mid_max_days:
            raise PolicyError("proposal.recent_max_days must be below proposal.mid_max_days")


@dataclass(frozen=True, slots=True)
class FreshnessPolicy:
    fresh_max_days: int = 7
    aging_max_days: int = 30

    def __post_init__(self) -> None:
        if self.fresh_max_days < 0:
            raise PolicyError("freshness.fresh_max_days must be >= 0")
        if self.fresh_max_days >= self.aging_max_days:
            raise PolicyError("freshness.fresh_max_days must be below freshness.aging_max_days")


@dataclass(frozen=True, slots=True)
class HealthPolicy:
    # Counts of tracked sources tolerated before the platform level escalates.
    stale_tolerance: int = 0
    aging_tolerance: int = 0
    unknown_tolerance: int = 0
    degrade_on_failed_run: bool = True

    def __post_init__(self) -> None:
        for name in ("stale_tolerance", "aging_tolerance", "unknown_tolerance"):
            if getattr(self, name) < 0:
                raise PolicyError(f"health.{name} must be >= 0")


@dataclass(frozen=True, slots=True)
class AnomalyPolicy:
    moderate_min_pct: float = 10.0
    significant_above_pct: float = 25.0
    min_report_pct: float = 10.0

    def __post_init__(self) -> None:
        if not 0 < self.moderate_min_pct <= self.significant_above_pct:
            raise PolicyError("anomaly.moderate_min_pct must be > 0 and <= anomaly.significant_above_pct")
        if self.min_report_pct < 0:
            raise PolicyError("anomaly.min_report_pct must be >= 0")


@dataclass(frozen=True, slots=True)
class CoveragePolicy:
    min_records: int = 10
    stale_days: int = 30

    def __post_init__(self) -> None:
        if self.min_records < 0 or self.stale_days < 0:
            raise PolicyError("coverage thresholds must be >= 0")


@dataclass(frozen=True, slots=True)
class EnginePolicy:
    proposal: ProposalPolicy = field(default_factory=ProposalPolicy)
    freshness: FreshnessPolicy = field(default_factory=FreshnessPolicy)
    health: HealthPolicy = field(default_factory=HealthPolicy)
    anomaly: AnomalyPolicy = field(default_factory=AnomalyPolicy)
    coverage: CoveragePolicy = field(default_factory=CoveragePolicy)


DEFAULT_POLICY = EnginePolicy()

# Shipped with the package; read when no other policy file is configured.
BUNDLED_POLICY_PATH = Path(__file__).resolve().parents[1] / "config" / "policy.yaml"

_SECTIONS = tuple(f.name for f in dataclasses.fields(EnginePolicy))


def _coerce(section: str, key: str, value: Any, default: Any) -> Any:
    where = f"{section}.{key}"
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise PolicyError(f"{where} must be true/false (got {value!r})")
        return value
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise PolicyError(f"{where} must be an integer (got {value!r})")
        return value
    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise PolicyError(f"{where} must be a number (got {value!r})")
        return float(value)
    return value


def _override_section(section: str, current: Any, values: Any) -> Any:
    if values is None:
        return current
    if not isinstance(values, Mapping):
        raise PolicyError(f"policy section '{section}' must be a mapping")
    known = {f.name for f in dataclasses.fields(current)}
    changes: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            raise PolicyError(f"unknown policy key '{section}.{key}'")
        changes[key] = _coerce(section, key, value, getattr(current, key))
    return dataclasses.replace(current, **changes)


def policy_from_mapping(raw: Mapping[str, Any], *, base: EnginePolicy = DEFAULT_POLICY) -> EnginePolicy:
    unknown = sorted(set(raw) - set(_SECTIONS))
    if unknown:
        raise PolicyError(f"unknown policy section(s): {', '.join(unknown)}")
    changes = {
        section: _override_section(section, getattr(base, section), raw.get(section))
        for section in _SECTIONS
        if section in raw
    }
    return dataclasses.replace(base, **changes)


def load_policy(path: Path) -> EnginePolicy:
    try:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise PolicyError(f"cannot read policy file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PolicyError(f"invalid policy YAML in {path}: {exc}") from exc
    if raw is None:
        return DEFAULT_POLICY
    if not isinstance(raw, dict):
        raise PolicyError("policy yaml must be a mapping")
    return policy_from_mapping(raw)


def apply_env_overrides(policy: EnginePolicy) -> EnginePolicy:
    """Apply PRICEBENCH_* overrides on top of an already-resolved policy."""
    try:
        min_records = env_int("COVERAGE_MIN_RECORDS")
        stale_days = env_int("STALE_DAYS")
        min_report_pct = env_float("ANOMALY_MIN_REPORT_PCT")
    except ValueError as exc:
        raise PolicyError(str(exc)) from exc

    coverage = policy.coverage
    if min_records is not None:
        coverage = dataclasses.replace(coverage, min_records=min_records)
    if stale_days is not None:
        coverage = dataclasses.replace(coverage, stale_days=stale_days)

    anomaly = policy.anomaly
    if min_report_pct is not None:
        anomaly = dataclasses.replace(anomaly, min_report_pct=min_report_pct)

    return dataclasses.replace(policy, coverage=coverage, anomaly=anomaly)


def resolve_policy(path: Optional[Path] = None) -> EnginePolicy:
    """Defaults <- YAML file <- env.

    The file is `path`, else PRICEBENCH_POLICY_PATH, else the bundled
    config/policy.yaml when present.
    """
    if path is None:
        configured = env_str("POLICY_PATH")
        if configured:
            path = Path(configured)
        elif BUNDLED_POLICY_PATH.is_file():
            path = BUNDLED_POLICY_PATH
    policy = load_policy(path) if path is not None else DEFAULT_POLICY
    return apply_env_overrides(policy)
