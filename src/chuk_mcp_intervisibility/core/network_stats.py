"""
Visibility network statistics.

The graph is rebuilt from the final visible-pair set; nodes are site
indices 0..n-1 and edges are undirected. Distances are hop counts found by
breadth-first search, with ``UNREACHABLE`` marking disconnected pairs.
"""

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numpy.typing import NDArray

from ..constants import DEFAULT_TOP_SITES, UNREACHABLE
from .sites import VisiblePair

logger = logging.getLogger(__name__)

BoolArray = NDArray[np.bool_]


class VisibilityGraph:
    """Immutable symmetric boolean adjacency over ``node_count`` sites."""

    def __init__(self, adjacency: BoolArray) -> None:
        if adjacency.ndim != 2 or adjacency.shape[0] != adjacency.shape[1]:
            raise ValueError(f"Adjacency must be square, got shape {adjacency.shape}")
        self.adjacency = adjacency.astype(bool)
        self.adjacency.setflags(write=False)
        self._neighbors = [np.flatnonzero(row).tolist() for row in self.adjacency]

    @classmethod
    def from_pairs(
        cls, node_count: int, pairs: Iterable[VisiblePair | tuple[int, int]]
    ) -> "VisibilityGraph":
        """Build the graph from visible pairs; self-loops and out-of-range pairs are ignored."""
        adjacency = np.zeros((node_count, node_count), dtype=bool)
        for pair in pairs:
            a, b = (pair.i, pair.j) if isinstance(pair, VisiblePair) else pair
            if 0 <= a < node_count and 0 <= b < node_count and a != b:
                adjacency[a, b] = True
                adjacency[b, a] = True
            else:
                logger.debug(f"Ignoring pair ({a}, {b}) for a {node_count}-node graph")
        return cls(adjacency)

    @property
    def node_count(self) -> int:
        return int(self.adjacency.shape[0])

    @property
    def edge_count(self) -> int:
        return int(self.adjacency.sum()) // 2

    def neighbors(self, node: int) -> list[int]:
        return self._neighbors[node]

    def degree(self, node: int) -> int:
        return len(self._neighbors[node])

    def has_edge(self, a: int, b: int) -> bool:
        return bool(self.adjacency[a, b])


# ---------------------------------------------------------------------------
# Graph algorithms
# ---------------------------------------------------------------------------


def bfs_distances(graph: VisibilityGraph, source: int) -> list[int]:
    """Hop distance from ``source`` to every node; ``UNREACHABLE`` if disconnected."""
    dist = [UNREACHABLE] * graph.node_count
    dist[source] = 0
    queue = deque([source])
    while queue:
        u = queue.popleft()
        for v in graph.neighbors(u):
            if dist[v] == UNREACHABLE:
                dist[v] = dist[u] + 1
                queue.append(v)
    return dist


def all_pairs_distances(graph: VisibilityGraph) -> list[list[int]]:
    return [bfs_distances(graph, s) for s in range(graph.node_count)]


def clustering_coefficient(graph: VisibilityGraph, node: int) -> float:
    """Closed neighbour pairs over possible neighbour pairs; 0 below degree 2."""
    neighbors = graph.neighbors(node)
    k = len(neighbors)
    if k < 2:
        return 0.0
    sub = graph.adjacency[np.ix_(neighbors, neighbors)]
    triangles = int(sub.sum()) // 2
    return triangles / (k * (k - 1) / 2)


def count_components(graph: VisibilityGraph) -> int:
    visited = [False] * graph.node_count
    count = 0
    for seed in range(graph.node_count):
        if visited[seed]:
            continue
        count += 1
        visited[seed] = True
        queue = deque([seed])
        while queue:
            u = queue.popleft()
            for v in graph.neighbors(u):
                if not visited[v]:
                    visited[v] = True
                    queue.append(v)
    return count


def diameter(distances: list[list[int]]) -> int | None:
    """Largest finite distance; None when n > 1 and no two distinct nodes connect."""
    n = len(distances)
    longest = 0
    for row in distances:
        for d in row:
            if d > longest:
                longest = d
    if longest == 0 and n > 1:
        return None
    return longest


def average_path_length(distances: list[list[int]]) -> float:
    """Mean distance over reachable unordered pairs only; 0.0 if there are none."""
    total = 0
    pairs = 0
    n = len(distances)
    for s in range(n):
        for t in range(s + 1, n):
            d = distances[s][t]
            if d != UNREACHABLE:
                total += d
                pairs += 1
    return total / pairs if pairs else 0.0


def shortest_paths_between(
    graph: VisibilityGraph, source: int, target: int, dist: list[int] | None = None
) -> list[list[int]]:
    """Every shortest path from ``source`` to ``target`` as node lists.

    Builds predecessor sets from the BFS layering, then backtracks from the
    target. The number of paths can grow exponentially in lattice-like graphs.
    """
    if dist is None:
        dist = bfs_distances(graph, source)
    if dist[target] == UNREACHABLE:
        return []

    preds: dict[int, list[int]] = {}
    for v in range(graph.node_count):
        if dist[v] == UNREACHABLE or dist[v] == 0 or dist[v] > dist[target]:
            continue
        preds[v] = [u for u in graph.neighbors(v) if dist[u] == dist[v] - 1]

    paths: list[list[int]] = []
    stack: list[tuple[int, list[int]]] = [(target, [target])]
    while stack:
        node, partial = stack.pop()
        if node == source:
            paths.append(partial[::-1])
            continue
        for p in preds.get(node, []):
            stack.append((p, partial + [p]))
    return paths


def betweenness_centrality(graph: VisibilityGraph) -> list[float]:
    """Unnormalised betweenness from full shortest-path enumeration over unordered pairs."""
    n = graph.node_count
    scores = [0.0] * n
    for s in range(n):
        dist = bfs_distances(graph, s)
        for t in range(s + 1, n):
            paths = shortest_paths_between(graph, s, t, dist)
            if not paths:
                continue
            share = 1.0 / len(paths)
            for path in paths:
                for v in path[1:-1]:
                    scores[v] += share
    return scores


def closeness_centrality(distances: list[list[int]]) -> list[float]:
    """1 / mean distance to reachable others; 0 for isolated nodes."""
    scores = []
    for i, row in enumerate(distances):
        reachable = [d for j, d in enumerate(row) if j != i and d != UNREACHABLE]
        if not reachable or sum(reachable) == 0:
            scores.append(0.0)
        else:
            scores.append(len(reachable) / sum(reachable))
    return scores


# ---------------------------------------------------------------------------
# Statistics bundle
# ---------------------------------------------------------------------------


@dataclass
class NodeStatistics:
    """Per-site network metrics."""

    index: int
    degree: int
    clustering: float
    betweenness: float
    closeness: float


@dataclass
class NetworkStatistics:
    """All metrics for one visibility graph."""

    node_count: int
    edge_count: int
    average_degree: float
    average_clustering: float
    components: int
    diameter: int | None
    average_path_length: float
    intervisibility_ratio: float
    nodes: list[NodeStatistics] = field(default_factory=list)
    degree_distribution: dict[int, int] = field(default_factory=dict)
    top_sites: list[NodeStatistics] = field(default_factory=list)

    @property
    def degrees(self) -> list[int]:
        return [n.degree for n in self.nodes]

    @property
    def clustering(self) -> list[float]:
        return [n.clustering for n in self.nodes]

    @property
    def betweenness(self) -> list[float]:
        return [n.betweenness for n in self.nodes]

    @property
    def closeness(self) -> list[float]:
        return [n.closeness for n in self.nodes]

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "average_degree": self.average_degree,
            "average_clustering": self.average_clustering,
            "components": self.components,
            "diameter": self.diameter,
            "average_path_length": self.average_path_length,
            "intervisibility_ratio": self.intervisibility_ratio,
            "degree_distribution": {str(k): v for k, v in self.degree_distribution.items()},
            "nodes": [vars(n).copy() for n in self.nodes],
            "top_sites": [vars(n).copy() for n in self.top_sites],
        }


def compute_statistics(
    graph: VisibilityGraph, top_n: int = DEFAULT_TOP_SITES
) -> NetworkStatistics:
    """Compute every network metric for ``graph``."""
    n = graph.node_count
    distances = all_pairs_distances(graph)
    betweenness = betweenness_centrality(graph)
    closeness = closeness_centrality(distances)

    nodes = [
        NodeStatistics(
            index=i,
            degree=graph.degree(i),
            clustering=clustering_coefficient(graph, i),
            betweenness=betweenness[i],
            closeness=closeness[i],
        )
        for i in range(n)
    ]

    distribution: dict[int, int] = {}
    for node in nodes:
        distribution[node.degree] = distribution.get(node.degree, 0) + 1

    possible_pairs = n * (n - 1) // 2
    ratio = 100.0 * graph.edge_count / possible_pairs if possible_pairs else 0.0
    ranked = sorted(nodes, key=lambda s: (-s.degree, s.index))

    return NetworkStatistics(
        node_count=n,
        edge_count=graph.edge_count,
        average_degree=sum(s.degree for s in nodes) / n if n else 0.0,
        average_clustering=sum(s.clustering for s in nodes) / n if n else 0.0,
        components=count_components(graph),
        diameter=diameter(distances),
        average_path_length=average_path_length(distances),
        intervisibility_ratio=ratio,
        nodes=nodes,
        degree_distribution=dict(sorted(distribution.items())),
        top_sites=ranked[:top_n],
    )
