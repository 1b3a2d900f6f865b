"""Value objects for the widget registry domain."""

from widgetry.domain.value_objects.version import (
    WidgetVersion,
    compare_versions,
    format_version,
)

__all__ = ["WidgetVersion", "compare_versions", "format_version"]
