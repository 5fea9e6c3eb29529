from .base import BaseCollector, CollectorResult
from .identity import IdentityCollector, domain_filter
from .domains import DomainCollector, resolve_fallback_domain

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "IdentityCollector",
    "domain_filter",
    "DomainCollector",
    "resolve_fallback_domain",
]
