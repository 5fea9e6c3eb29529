from .models import (
    AttributeEdits,
    Identity,
    OutcomeStatus,
    RemediationOutcome,
    RemediationPlan,
    RunSummary,
)
from .proxy_addresses import ProxyAddress, ProxyKind, rebuild_proxy_addresses
from .engine import (
    DomainRemediationEngine,
    InvalidConfiguration,
    RemediationError,
    RemediationPolicy,
    aggregate_run,
    plan_remediation,
)
from .usage import DomainUsage, measure_domain_usage
from .runner import RemediationRunner, static_lookup

__all__ = [
    "AttributeEdits",
    "Identity",
    "OutcomeStatus",
    "RemediationOutcome",
    "RemediationPlan",
    "RunSummary",
    "ProxyAddress",
    "ProxyKind",
    "rebuild_proxy_addresses",
    "DomainRemediationEngine",
    "InvalidConfiguration",
    "RemediationError",
    "RemediationPolicy",
    "aggregate_run",
    "plan_remediation",
    "DomainUsage",
    "measure_domain_usage",
    "RemediationRunner",
    "static_lookup",
]
