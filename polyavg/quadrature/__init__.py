"""
Numerical integration: domain transforms, embedded rules and the adaptive
vector cubature engine.
"""

from polyavg.quadrature.transforms import (
    Domain,
    DomainTransform,
    IdentityTransform,
    SemiInfiniteTransform,
    InfiniteTransform,
    transform_for_domain,
)
from polyavg.quadrature.rules import (
    RuleEstimate,
    EmbeddedRule,
    GaussKronrodRule,
    GenzMalikRule,
    default_rule,
)
from polyavg.quadrature.cubature import (
    ErrorNorm,
    CubatureResult,
    AdaptiveCubature,
    combine_errors,
    integrate,
)

__all__ = [
    "Domain",
    "DomainTransform",
    "IdentityTransform",
    "SemiInfiniteTransform",
    "InfiniteTransform",
    "transform_for_domain",
    "RuleEstimate",
    "EmbeddedRule",
    "GaussKronrodRule",
    "GenzMalikRule",
    "default_rule",
    "ErrorNorm",
    "CubatureResult",
    "AdaptiveCubature",
    "combine_errors",
    "integrate",
]
