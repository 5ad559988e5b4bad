"""blobfs data models."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ListKeysResult:
    """Result of a prefix-filtered key listing.

    Attributes:
        dirs: Directory names matching the prefix. Always empty for flat
            backends.
        keys: Object keys starting with the prefix.
    """

    dirs: frozenset[str] = field(default_factory=frozenset)
    keys: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, keys: Iterable[str], dirs: Iterable[str] = ()) -> ListKeysResult:
        """Build a result from any iterables of names."""
        return cls(dirs=frozenset(dirs), keys=frozenset(keys))

    def to_dict(self) -> dict[str, list[str]]:
        """Convert to a JSON-friendly dictionary with sorted lists."""
        return {"dirs": sorted(self.dirs), "keys": sorted(self.keys)}
