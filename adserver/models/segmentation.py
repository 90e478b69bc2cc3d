"""Segmentation value types.

A campaign targets up to three independent id sets. An empty set for a
dimension is a wildcard: the campaign matches any value in that dimension.
A serving request supplies at most one id per dimension; dimensions it leaves
out are not filtered on.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from .db.enums import SegmentDimension


def _ids(values: Optional[Iterable[str]]) -> frozenset[str]:
    if not values:
        return frozenset()
    return frozenset(str(v).strip() for v in values if v is not None and str(v).strip())


@dataclass(frozen=True)
class Segmentation:
    communities: frozenset[str] = field(default_factory=frozenset)
    categories: frozenset[str] = field(default_factory=frozenset)
    businesses: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(
        cls,
        communities: Optional[Iterable[str]] = None,
        categories: Optional[Iterable[str]] = None,
        businesses: Optional[Iterable[str]] = None,
    ) -> "Segmentation":
        return cls(_ids(communities), _ids(categories), _ids(businesses))

    def for_dimension(self, dimension: SegmentDimension) -> frozenset[str]:
        if dimension == SegmentDimension.COMMUNITY:
            return self.communities
        if dimension == SegmentDimension.CATEGORY:
            return self.categories
        return self.businesses

    def pairs(self) -> Iterator[tuple[SegmentDimension, str]]:
        """(dimension, target_id) rows, sorted for stable inserts."""
        for dimension in SegmentDimension:
            for target_id in sorted(self.for_dimension(dimension)):
                yield dimension, target_id

    def matches(self, query: "SegmentationQuery") -> bool:
        for dimension, wanted in query.supplied():
            ids = self.for_dimension(dimension)
            if ids and wanted not in ids:
                return False
        return True


@dataclass(frozen=True)
class SegmentationQuery:
    community_id: Optional[str] = None
    category_id: Optional[str] = None
    business_id: Optional[str] = None

    def supplied(self) -> list[tuple[SegmentDimension, str]]:
        out = []
        if self.community_id:
            out.append((SegmentDimension.COMMUNITY, self.community_id))
        if self.category_id:
            out.append((SegmentDimension.CATEGORY, self.category_id))
        if self.business_id:
            out.append((SegmentDimension.BUSINESS, self.business_id))
        return out


__all__ = ["Segmentation", "SegmentationQuery"]
