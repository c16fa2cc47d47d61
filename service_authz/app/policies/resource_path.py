"""
Hierarchical resource identifiers such as ``form`` or ``form:field``.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple


SEPARATOR = ":"
WILDCARD = "*"


@dataclass(frozen=True)
class ResourcePath:
    """Ordered resource type segments, e.g. ``("form", "field")``."""

    segments: Tuple[str, ...]

    @property
    def base(self) -> str:
        return self.segments[0] if self.segments else ""

    @property
    def is_wildcard(self) -> bool:
        return self.segments == (WILDCARD,)

    def child(self, segment: str) -> "ResourcePath":
        return ResourcePath(self.segments + (segment,))

    def matches(self, other: "ResourcePath") -> bool:
        """Whether this path, used as a policy pattern, covers ``other``.

        A pattern covers a resource when it is ``*``, is identical, or has
        the same base segment (``form`` covers ``form:field`` and
        ``form:*`` covers ``form``).
        """
        if self.is_wildcard:
            return True
        if self.segments == other.segments:
            return True
        return self.base == other.base

    def __str__(self) -> str:
        return SEPARATOR.join(self.segments)


@lru_cache(maxsize=2048)
def parse_resource_path(value: str) -> ResourcePath:
    """Parse ``"form:field"`` into a ResourcePath."""
    return ResourcePath(tuple(value.split(SEPARATOR)))
