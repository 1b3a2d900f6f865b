"""External integrations (HTTP)."""

from widgetry.infrastructure.integrations.http_pool import HttpClientPool

__all__ = ["HttpClientPool"]
