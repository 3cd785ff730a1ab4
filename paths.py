"""
Shortest-path analysis over the referral graph (pure functions - do not mutate network).

A node v lies on a shortest s -> t path iff dist(s, v) + dist(v, t) == dist(s, t).
dist(v, t) comes from a BFS from t over reversed edges. The number of shortest
s -> t paths through v is sigma_s(v) * sigma_t(v), where sigma counts shortest
paths from the BFS source.
"""

import logging
from collections import deque
from typing import Iterable, Mapping, Sequence

logger = logging.getLogger("referral.paths")

Adjacency = Mapping[str, Sequence[str]]


def reverse_adjacency(adj: Adjacency) -> dict[str, list[str]]:
    """Reverse every edge. Nodes without incoming or outgoing edges are kept."""
    reverse: dict[str, list[str]] = {node: [] for node in adj}
    for u, targets in adj.items():
        for w in targets:
            reverse.setdefault(w, []).append(u)
    return reverse


def bfs_count_paths(
    source: str, adj: Adjacency, nodes: Iterable[str]
) -> tuple[dict[str, int], dict[str, int]]:
    """
    BFS from source returning (dist, sigma) for every node in nodes.

    dist is -1 for unreachable nodes, sigma is the number of distinct shortest
    paths from source (exact integers).
    """
    dist = {node: -1 for node in nodes}
    sigma = {node: 0 for node in dist}
    if source not in dist:
        return dist, sigma

    dist[source] = 0
    sigma[source] = 1
    queue = deque([source])
    while queue:
        u = queue.popleft()
        for w in adj.get(u, ()):
            if dist.get(w, -1) < 0:
                dist[w] = dist[u] + 1
                sigma.setdefault(w, 0)
                queue.append(w)
            if dist[w] == dist[u] + 1:
                sigma[w] += sigma[u]
    return dist, sigma


def shortest_path_share(
    adj: Adjacency, source: str, target: str, candidate: str
) -> tuple[bool, float]:
    """
    Does candidate lie on a shortest source -> target path, and on what share
    of them? Returns (False, 0.0) when any of the nodes is out of reach.
    """
    reverse = reverse_adjacency(adj)
    nodes = reverse.keys()  # superset of adj keys
    dist_s, sigma_s = bfs_count_paths(source, adj, nodes)
    dist_t, sigma_t = bfs_count_paths(target, reverse, nodes)

    if dist_s.get(target, -1) < 0:
        return False, 0.0  # no source -> target path at all
    if dist_s.get(candidate, -1) < 0 or dist_t.get(candidate, -1) < 0:
        return False, 0.0
    if dist_s[candidate] + dist_t[candidate] != dist_s[target]:
        return False, 0.0

    through = sigma_s[candidate] * sigma_t[candidate]
    total = sigma_s[target]
    if total == 0:
        return False, 0.0
    return through > 0, through / total


def is_on_shortest_path(network, source: str, target: str, candidate: str) -> tuple[bool, float]:
    """
    Address-level query against a ReferralNetwork. Raises UnknownIdentity if
    any of the three addresses is not registered.
    """
    registry = network.registry
    s = registry.resolve(source)
    t = registry.resolve(target)
    v = registry.resolve(candidate)

    on_path, fraction = shortest_path_share(network.adjacency(), s, t, v)
    logger.debug(f"{candidate} on shortest {source} -> {target}: {on_path} ({fraction})")
    return on_path, fraction
