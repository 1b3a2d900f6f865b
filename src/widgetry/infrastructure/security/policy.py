"""Security policy: host allow-list gate and content-security-policy descriptor.

Hey future me - the allow-list check MUST run before ANY network I/O for a source.
The registry calls SecurityPolicyEnforcer.check() before it even picks a loader, so a
disallowed CDN URL never produces a single packet. Local sources ("widget-a",
"./widgets/kpi.py", "pkg:acme.kpi") bypass the gate entirely - they never touch the
network.

Matching is EXACT or SUBDOMAIN: "unpkg.com" allows "unpkg.com" and "eu.unpkg.com",
but NOT "evilunpkg.com" (that's why we match on ".unpkg.com", not endswith("unpkg.com")).
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from widgetry.domain.exceptions import DomainNotAllowedError

logger = logging.getLogger(__name__)

NETWORK_SCHEMES = frozenset({"http", "https"})


class SecurityPolicyEnforcer:
    """Allow-list gate for network widget sources."""

    def __init__(self, allowed_domains: Iterable[str]) -> None:
        """Initialize with the allowed hostnames.

        Args:
            allowed_domains: Hostnames; each also allows its subdomains
        """
        self._allowed = tuple(
            domain.strip().lower().rstrip(".") for domain in allowed_domains if domain.strip()
        )

    @property
    def allowed_domains(self) -> tuple[str, ...]:
        """The configured allow-list (normalized, read-only)."""
        return self._allowed

    def is_network_source(self, source: str) -> bool:
        """True for absolute http(s) URLs."""
        parts = urlsplit(source)
        return parts.scheme.lower() in NETWORK_SCHEMES and bool(parts.netloc)

    def is_host_allowed(self, hostname: str) -> bool:
        """Exact or subdomain match against the allow-list."""
        host = hostname.lower().rstrip(".")
        return any(host == domain or host.endswith(f".{domain}") for domain in self._allowed)

    def check(self, source: str) -> None:
        """Gate a source string.

        Raises:
            DomainNotAllowedError: If source is an http(s) URL to a host outside the list
        """
        if not self.is_network_source(source):
            return

        hostname = urlsplit(source).hostname or ""
        if not self.is_host_allowed(hostname):
            logger.warning(
                "Blocked widget source from disallowed domain %s", hostname,
                extra={"source": source, "hostname": hostname},
            )
            raise DomainNotAllowedError(hostname, source)


@dataclass(frozen=True)
class ContentSecurityPolicy:
    """CSP directive set the host should serve alongside mounted widgets.

    The registry doesn't enforce it (the rendering layer / HTTP responses do), it only
    owns the descriptor so every consumer sees the same policy for the registry's lifetime.
    """

    directives: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: dict[str, list[str]]) -> "ContentSecurityPolicy":
        return cls(directives={name: tuple(sources) for name, sources in mapping.items()})

    def sources_for(self, directive: str) -> tuple[str, ...]:
        """Sources of a directive, falling back to default-src like browsers do."""
        return self.directives.get(directive, self.directives.get("default-src", ()))

    def header_value(self) -> str:
        """Render as a Content-Security-Policy header value."""
        return "; ".join(
            f"{name} {' '.join(sources)}" if sources else name
            for name, sources in self.directives.items()
        )
