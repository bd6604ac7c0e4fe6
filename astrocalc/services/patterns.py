"""
Multi-body aspect configurations read off an aspect list.

Works on the aspect graph only: nodes are bodies, edges are the aspects
already detected for the chart. No positions are needed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from itertools import combinations
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx

from ..schemas.charts import Aspect
from ..schemas.patterns import AspectPattern
from .aspects import max_orb
from .constants import body_rank

logger = logging.getLogger(__name__)

PATTERN_ORDER = ["grand_cross", "mystic_rectangle", "kite", "grand_trine", "t_square", "yod", "stellium"]
_RANK = {name: i for i, name in enumerate(PATTERN_ORDER)}

Edge = FrozenSet[str]


class _Graph:
    def __init__(self, aspects: Iterable[Aspect]):
        self.edges: Dict[Edge, Aspect] = {}
        for a in aspects:
            if a.body1 == a.body2:
                continue
            key = frozenset((a.body1, a.body2))
            prev = self.edges.get(key)
            # duplicates: keep the tighter one
            if prev is None or a.orb < prev.orb:
                self.edges[key] = a
        self.bodies = sorted({b for e in self.edges for b in e}, key=body_rank)
        self.adj: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))
        for key, asp in self.edges.items():
            a, b = key
            self.adj[asp.type][a].add(b)
            self.adj[asp.type][b].add(a)

    def kind(self, a: str, b: str) -> Optional[str]:
        asp = self.edges.get(frozenset((a, b)))
        return asp.type if asp else None

    def is_(self, kind: str, a: str, b: str) -> bool:
        return self.kind(a, b) == kind

    def edge(self, a: str, b: str) -> Aspect:
        return self.edges[frozenset((a, b))]

    def pairs(self, kind: str) -> List[Tuple[str, str]]:
        """Edges of one aspect type as rank-ordered pairs, in rank order."""

        out = [tuple(sorted(key, key=body_rank)) for key, asp in self.edges.items() if asp.type == kind]
        return sorted(out, key=lambda p: (body_rank(p[0]), body_rank(p[1])))

    def common(self, kind: str, a: str, b: str) -> List[str]:
        """Bodies joined to both ``a`` and ``b`` by ``kind``."""

        nbrs = self.adj[kind]
        return sorted(nbrs[a] & nbrs[b], key=body_rank)


def _intensity(aspects: Sequence[Aspect]) -> float:
    closeness = [max(0.0, 1.0 - a.orb / max_orb(a.type)) for a in aspects]
    score = 100.0 * sum(closeness) / len(closeness)
    return round(min(100.0, max(0.0, score)), 1)


def _pattern(kind: str, g: _Graph, bodies: Iterable[str], pairs: Sequence[tuple], apex: Optional[str] = None) -> AspectPattern:
    edges = [g.edge(a, b) for a, b in pairs]
    return AspectPattern(
        type=kind,
        bodies=sorted(set(bodies), key=body_rank),
        apex=apex,
        aspects=len(edges),
        intensity=_intensity(edges),
    )


def _grand_trines(g: _Graph) -> List[AspectPattern]:
    out = []
    for a, b in g.pairs("trine"):
        for c in g.common("trine", a, b):
            # each triangle once, from its two lowest-ranked bodies
            if body_rank(c) > body_rank(b):
                out.append(_pattern("grand_trine", g, (a, b, c), [(a, b), (b, c), (a, c)]))
    return out


def _apex_patterns(g: _Graph, kind: str, base: str, leg: str) -> List[AspectPattern]:
    """Two bodies joined by ``base``, both aspecting a third by ``leg``."""

    out = []
    for a, b in g.pairs(base):
        for apex in g.common(leg, a, b):
            out.append(_pattern(kind, g, (a, b, apex), [(a, b), (apex, a), (apex, b)], apex=apex))
    return out


def _four_body(g: _Graph, kind: str, counts: Dict[str, int]) -> List[AspectPattern]:
    """Four bodies whose six pairs carry exactly ``counts`` aspect types.

    Both shapes carry two oppositions, and those must not share a body, so
    candidates are built from pairs of disjoint opposition edges.
    """

    out = []
    for (a, b), (c, d) in combinations(g.pairs("opposition"), 2):
        if {a, b} & {c, d}:
            continue
        quad = sorted((a, b, c, d), key=body_rank)
        pairs = list(combinations(quad, 2))
        kinds = [g.kind(x, y) for x, y in pairs]
        if any(k is None for k in kinds):
            continue
        if any(kinds.count(k) != n for k, n in counts.items()):
            continue
        out.append(_pattern(kind, g, quad, pairs))
    return out


def _kites(g: _Graph, trines: Sequence[AspectPattern]) -> List[AspectPattern]:
    out = []
    for gt in trines:
        for apex in gt.bodies:
            b, c = [x for x in gt.bodies if x != apex]
            for d in sorted(g.adj["opposition"][apex], key=body_rank):
                if d in gt.bodies:
                    continue
                if g.is_("sextile", d, b) and g.is_("sextile", d, c):
                    pairs = [(apex, b), (b, c), (apex, c), (apex, d), (d, b), (d, c)]
                    out.append(_pattern("kite", g, (apex, b, c, d), pairs, apex=apex))
    return out


def _stelliums(g: _Graph) -> List[AspectPattern]:
    """Maximal groups of three or more mutually conjunct bodies."""

    conj = nx.Graph()
    conj.add_edges_from(g.pairs("conjunction"))
    out = []
    # Bron-Kerbosch with pivoting; overlapping groups are each maximal
    for group in nx.find_cliques(conj):
        if len(group) < 3:
            continue
        members = sorted(group, key=body_rank)
        out.append(_pattern("stellium", g, members, list(combinations(members, 2))))
    return out


def _sort_key(p: AspectPattern):
    return (_RANK[p.type], [body_rank(b) for b in p.bodies], body_rank(p.apex) if p.apex else ())


def detect_patterns(aspects: Iterable[Aspect]) -> List[AspectPattern]:
    g = _Graph(aspects)

    crosses = _four_body(g, "grand_cross", {"opposition": 2, "square": 4})
    rectangles = _four_body(g, "mystic_rectangle", {"opposition": 2, "trine": 2, "sextile": 2})
    trines = _grand_trines(g)
    kites = _kites(g, trines)
    # A grand cross already contains four T-squares
    cross_sets = [set(c.bodies) for c in crosses]
    t_squares = [
        t for t in _apex_patterns(g, "t_square", "opposition", "square")
        if not any(set(t.bodies) <= s for s in cross_sets)
    ]
    yods = _apex_patterns(g, "yod", "sextile", "quincunx")
    stelliums = _stelliums(g)

    patterns = sorted(crosses + rectangles + kites + trines + t_squares + yods + stelliums, key=_sort_key)
    logger.debug("aspect_patterns_detected", extra={"count": len(patterns), "aspects": len(g.edges)})
    return patterns
