"""Benchmark engine primitives: proposals, freshness, anomalies, coverage."""

from intel.core.anomaly import (
    ChangeDirection,
    InsightType,
    PriceAnomalyEvent,
    Severity,
    assess_price_change,
    classify_severity,
    detect_anomaly,
    detect_snapshot_anomalies,
)
from intel.core.coverage import (
    CoverageGap,
    HealthReport,
    HealthSummary,
    build_health_report,
    find_coverage_gaps,
    summarize_source_health,
)
from intel.core.errors import (
    BenchmarkEngineError,
    InsufficientEvidenceError,
    InvalidGradeError,
    MalformedRecordError,
    PolicyError,
)
from intel.core.freshness import (
    CategoryFreshness,
    FreshnessAssessment,
    FreshnessLevel,
    HealthLevel,
    SourceStatus,
    category_freshness,
    classify_freshness,
)
from intel.core.policy import DEFAULT_POLICY, EnginePolicy, load_policy, resolve_policy
from intel.core.proposal import (
    BenchmarkProposal,
    ProposalBatch,
    Recommendation,
    generate_proposal,
    generate_proposals,
)
from intel.core.records import EvidenceRecord, Grade, PipelineRun, RunStatus, SourceRegistryEntry
from intel.core.reliability import weight_of
# History needs the ORM models; import intel.core.history directly.
