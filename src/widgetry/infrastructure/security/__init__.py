"""Security policy enforcement for widget sources."""

from widgetry.infrastructure.security.policy import (
    ContentSecurityPolicy,
    SecurityPolicyEnforcer,
)

__all__ = ["ContentSecurityPolicy", "SecurityPolicyEnforcer"]
