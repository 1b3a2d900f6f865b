"""Widget version value object and the platform version comparator.

Hey future me - this is the SINGLE place where version strings get compared!
The comparison is deliberately simplified: split on ".", compare numerically
left-to-right, missing trailing parts count as 0. Prerelease ("-beta.1") and
build ("+sha.abc") qualifiers are stripped BEFORE comparing, so
"2.0.0-alpha" == "2.0.0". If the product ever needs real semver precedence,
swap compare_versions() for a conforming comparator - everything else calls
through here.
"""

import re
from dataclasses import dataclass
from typing import Any

from widgetry.domain.exceptions import ValidationException

_VERSION_RE = re.compile(
    r"^\s*v?(?P<core>\d[0-9A-Za-z.]*?)"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?\s*$"
)
_LEADING_DIGITS_RE = re.compile(r"^\d+")


@dataclass(frozen=True)
class WidgetVersion:
    """Semantic-ish version of a widget or plugin.

    Ordering only looks at major/minor/patch. prerelease and build are kept
    for display and search but never influence comparisons.
    """

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str | None = None
    build: str | None = None

    @classmethod
    def parse(cls, value: "str | dict[str, Any] | WidgetVersion") -> "WidgetVersion":
        """Build a version from a string ("1.2.3-rc.1+b5"), a mapping or a version.

        Raises:
            ValidationException: If the value cannot be interpreted as a version
        """
        if isinstance(value, WidgetVersion):
            return value

        if isinstance(value, dict):
            try:
                return cls(
                    major=int(value.get("major", 0)),
                    minor=int(value.get("minor", 0)),
                    patch=int(value.get("patch", 0)),
                    prerelease=value.get("prerelease") or None,
                    build=value.get("build") or None,
                )
            except (TypeError, ValueError) as e:
                raise ValidationException(f"Invalid version mapping: {value!r}") from e

        if not isinstance(value, str):
            raise ValidationException(f"Invalid version: {value!r}")

        match = _VERSION_RE.match(value)
        if match is None:
            raise ValidationException(f"Invalid version string: {value!r}")

        parts = _numeric_parts(match.group("core"))
        parts += [0] * (3 - len(parts))
        return cls(
            major=parts[0],
            minor=parts[1],
            patch=parts[2],
            prerelease=match.group("prerelease"),
            build=match.group("build"),
        )

    @property
    def core(self) -> str:
        """major.minor.patch without qualifiers."""
        return f"{self.major}.{self.minor}.{self.patch}"

    def compare(self, other: "WidgetVersion") -> int:
        """Return -1, 0 or 1 comparing only the numeric core."""
        return compare_versions(self.core, other.core)

    def __str__(self) -> str:
        version_string = self.core
        if self.prerelease:
            version_string += f"-{self.prerelease}"
        if self.build:
            version_string += f"+{self.build}"
        return version_string


def _strip_qualifiers(version: str) -> str:
    """Drop "-prerelease" and "+build" suffixes."""
    return version.strip().lstrip("v").split("+", 1)[0].split("-", 1)[0]


def _numeric_parts(core: str) -> list[int]:
    # A part without leading digits compares as 0 ("x" in "1.x" is 0).
    parts: list[int] = []
    for part in core.split("."):
        digits = _LEADING_DIGITS_RE.match(part)
        parts.append(int(digits.group()) if digits else 0)
    return parts


def compare_versions(v1: str, v2: str) -> int:
    """Compare two dotted version strings numerically.

    Args:
        v1: First version ("2.0", "1.4.10", "3.0.0-beta")
        v2: Second version

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2
    """
    parts1 = _numeric_parts(_strip_qualifiers(v1))
    parts2 = _numeric_parts(_strip_qualifiers(v2))

    for i in range(max(len(parts1), len(parts2))):
        part1 = parts1[i] if i < len(parts1) else 0
        part2 = parts2[i] if i < len(parts2) else 0

        if part1 < part2:
            return -1
        if part1 > part2:
            return 1

    return 0


def format_version(version: "WidgetVersion | str") -> str:
    """Format a version (object or string) the way search matches against it."""
    if isinstance(version, WidgetVersion):
        return str(version)
    return version
