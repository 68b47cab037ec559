"""
NeuroNote Entity Deduplication
==============================

Clusters near-duplicate mentions and collapses each cluster to one
representative.

Similarity between two mentions of the same field type::

    0.4 x Jaccard(token sets) + 0.2 x (1 - normalized Levenshtein) + 0.4 x semantic

computed on canonical names (synonym-group names set by the extractor).
Without a semantic comparator its weight is redistributed proportionally to
the other two terms. Pairs at or above ``merge_threshold`` are joined with
union-find, so the result does not depend on input order.

Representative choice (total order): highest confidence, then longest
source span, then earliest span start, then value text.

Usage:
    deduplicator = Deduplicator()
    clusters = deduplicator.deduplicate(result.get(FieldType.MEDICATION))
    collapsed, clusters = deduplicator.deduplicate_result(result)
"""

import json
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, Union

from src.core.config import DeduplicationConfig
from src.shared.enums import FieldType
from src.shared.models import (
    DatedEvent,
    EntityCluster,
    ExtractedField,
    ExtractionResult,
    ScoreField,
)
from src.shared.similarity import jaccard_similarity, normalized_edit_distance

logger = logging.getLogger(__name__)


class SemanticComparator(Protocol):
    """Anything that scores semantic similarity of two names in [0, 1]."""

    def similarity(self, a: str, b: str) -> float:
        ...


# =============================================================================
# Union-Find
# =============================================================================

class UnionFind:
    """Disjoint sets with path compression and union by rank."""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        if self.rank[root_a] < self.rank[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        if self.rank[root_a] == self.rank[root_b]:
            self.rank[root_a] += 1
        return True

    def groups(self) -> Dict[int, List[int]]:
        groups: Dict[int, List[int]] = defaultdict(list)
        for index in range(len(self.parent)):
            groups[self.find(index)].append(index)
        return groups


# =============================================================================
# Deduplicator
# =============================================================================

def _member_key(item: ExtractedField) -> Tuple:
    return item.sort_key() + (-item.confidence, json.dumps(item.to_dict(), sort_keys=True, default=str))


def _representative_key(item: ExtractedField) -> Tuple:
    return (-item.confidence, -item.span.length, item.span.start, item.value) + _member_key(item)


class Deduplicator:
    """Hybrid-similarity, union-find entity deduplicator."""

    def __init__(
        self,
        config: Optional[DeduplicationConfig] = None,
        comparator: Optional[SemanticComparator] = None,
    ):
        self.config = config or DeduplicationConfig()
        self.comparator = comparator

    # =========================================================================
    # Similarity
    # =========================================================================

    def name_similarity(self, a: str, b: str) -> float:
        """Hybrid similarity of two names in [0, 1]."""
        a, b = a.lower().strip(), b.lower().strip()
        if a == b:
            return 1.0

        jaccard = jaccard_similarity(a, b)
        edit = 1.0 - normalized_edit_distance(a, b)
        cfg = self.config

        if self.comparator is not None:
            semantic = min(1.0, max(0.0, self.comparator.similarity(a, b)))
            return cfg.jaccard_weight * jaccard + cfg.edit_weight * edit + cfg.semantic_weight * semantic

        base = cfg.jaccard_weight + cfg.edit_weight
        return (cfg.jaccard_weight / base) * jaccard + (cfg.edit_weight / base) * edit

    def similarity(self, a: ExtractedField, b: ExtractedField) -> float:
        return self.name_similarity(a.name, b.name)

    def can_merge(self, a: ExtractedField, b: ExtractedField) -> bool:
        """Structural guards applied before similarity."""
        if a.field_type != b.field_type:
            return False
        if isinstance(a, ScoreField) and isinstance(b, ScoreField):
            if a.scale != b.scale or a.score != b.score:
                return False
        if (
            self.config.respect_event_dates
            and isinstance(a, DatedEvent)
            and isinstance(b, DatedEvent)
            and a.event_date is not None
            and b.event_date is not None
            and a.event_date != b.event_date
        ):
            return False
        return True

    # =========================================================================
    # Clustering
    # =========================================================================

    def deduplicate(
        self,
        items: Iterable[Union[ExtractedField, EntityCluster]],
    ) -> Tuple[EntityCluster, ...]:
        """
        Cluster equivalent mentions.

        Clusters passed back in are flattened to their members, so
        ``deduplicate(deduplicate(X)) == deduplicate(X)``.
        """
        flat: List[ExtractedField] = []
        for item in items:
            if isinstance(item, EntityCluster):
                flat.extend(item.members)
            else:
                flat.append(item)

        # Canonical order first: clusters must not depend on input order
        flat.sort(key=_member_key)
        if not flat:
            return ()

        uf = UnionFind(len(flat))
        similarity_cache: Dict[Tuple[str, str], float] = {}
        merges = 0

        for i in range(len(flat)):
            for j in range(i + 1, len(flat)):
                a, b = flat[i], flat[j]
                if not self.can_merge(a, b):
                    continue
                pair = tuple(sorted((a.name.lower(), b.name.lower())))
                score = similarity_cache.get(pair)
                if score is None:
                    score = self.name_similarity(*pair)
                    similarity_cache[pair] = score
                if score >= self.config.merge_threshold and uf.union(i, j):
                    merges += 1

        clusters = []
        for indices in uf.groups().values():
            members = tuple(sorted((flat[i] for i in indices), key=_member_key))
            representative = min(members, key=_representative_key)
            clusters.append(EntityCluster(representative=representative, members=members))

        clusters.sort(key=lambda c: (c.representative.span.start, c.field_type.value, _representative_key(c.representative)))

        if merges:
            logger.debug(f"Deduplicated {len(flat)} mentions into {len(clusters)} clusters")
        return tuple(clusters)

    def deduplicate_result(
        self,
        result: ExtractionResult,
    ) -> Tuple[ExtractionResult, Tuple[EntityCluster, ...]]:
        """Collapse every field of an extraction result to its representatives."""
        fields: Dict[FieldType, Tuple[ExtractedField, ...]] = {}
        all_clusters: List[EntityCluster] = []
        for field_type, values in result.fields.items():
            clusters = self.deduplicate(values)
            all_clusters.extend(clusters)
            fields[field_type] = tuple(
                sorted((c.representative for c in clusters), key=lambda f: f.sort_key())
            )
        return ExtractionResult(fields=fields), tuple(all_clusters)
