"""Same-name road connectivity.

A street is often split into many OSM ways. Two roads are connected when
they carry the same non-empty name and one road's end point is exactly the
other's start point; the membership table is the reflexive-transitive closure
of that relation, so that a segment can look for marked crossings along the
whole logical street.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Hashable

import geopandas as gpd
import networkx as nx
import pandas as pd

from .utils import empty_table, single_line, sort_table

logger = logging.getLogger(__name__)

ENDPOINT_COLUMNS = {"road_id": "int64", "name": "object", "start": "object", "end": "object"}
EDGE_COLUMNS = {"from_road_id": "int64", "to_road_id": "int64"}
MEMBERSHIP_COLUMNS = {"start_road_id": "int64", "road_id": "int64"}


def same_name_endpoints(roads: gpd.GeoDataFrame) -> pd.DataFrame:
    """Start/end coordinates of named roads that reduce to a single line."""

    if roads.empty:
        return empty_table(ENDPOINT_COLUMNS)

    rows = []
    for road in roads.itertuples(index=False):
        if pd.isna(road.name) or not str(road.name).strip():
            continue
        line = single_line(road.geometry)
        if line is None:
            continue
        coords = list(line.coords)
        rows.append(
            {
                "road_id": int(road.road_id),
                "name": road.name,
                "start": tuple(coords[0]),
                "end": tuple(coords[-1]),
            }
        )
    if not rows:
        return empty_table(ENDPOINT_COLUMNS)
    return sort_table(pd.DataFrame(rows).astype({"road_id": "int64"}), ["road_id"])


def build_same_name_edges(endpoints: pd.DataFrame) -> pd.DataFrame:
    """Directed edges ``A -> B`` where ``A.end == B.start`` or ``A.start == B.end``."""

    if endpoints.empty:
        return empty_table(EDGE_COLUMNS)

    by_start: dict[tuple[str, Hashable], list[int]] = defaultdict(list)
    by_end: dict[tuple[str, Hashable], list[int]] = defaultdict(list)
    for row in endpoints.itertuples(index=False):
        by_start[(row.name, row.start)].append(row.road_id)
        by_end[(row.name, row.end)].append(row.road_id)

    edges: set[tuple[int, int]] = set()
    for row in endpoints.itertuples(index=False):
        for other in by_start.get((row.name, row.end), ()):
            if other != row.road_id:
                edges.add((row.road_id, other))
        for other in by_end.get((row.name, row.start), ()):
            if other != row.road_id:
                edges.add((row.road_id, other))

    if not edges:
        return empty_table(EDGE_COLUMNS)
    table = pd.DataFrame(sorted(edges), columns=list(EDGE_COLUMNS)).astype(EDGE_COLUMNS)
    return table


def connectivity_graph(road_ids, edges: pd.DataFrame) -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_nodes_from(int(road_id) for road_id in road_ids)
    graph.add_edges_from(
        zip(edges["from_road_id"].astype(int), edges["to_road_id"].astype(int))
    )
    return graph


def resolve_connectivity(roads: gpd.GeoDataFrame) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Return ``(edges, membership)`` for the road set.

    Every road is a member of its own component, including unnamed and
    multi-part roads that never take part in the edge graph. Reachability is
    an iterative breadth-first walk with a visited set, so cycles terminate
    and each ``(start_road_id, road_id)`` pair appears once.
    """

    endpoints = same_name_endpoints(roads)
    edges = build_same_name_edges(endpoints)
    if roads.empty:
        return edges, empty_table(MEMBERSHIP_COLUMNS)

    graph = connectivity_graph(roads["road_id"], edges)
    pairs: list[tuple[int, int]] = []
    for start in sorted(graph.nodes):
        pairs.append((start, start))
        if graph.out_degree(start) == 0:
            continue
        pairs.extend((start, reached) for reached in sorted(nx.descendants(graph, start)))

    membership = pd.DataFrame(pairs, columns=list(MEMBERSHIP_COLUMNS)).astype(
        MEMBERSHIP_COLUMNS
    )
    membership = sort_table(membership.drop_duplicates(), ["start_road_id", "road_id"])

    logger.info(
        "Same-name graph: %d named single-line roads, %d edges, %d membership rows.",
        len(endpoints),
        len(edges),
        len(membership),
    )
    return edges, membership


def membership_sets(membership: pd.DataFrame) -> dict[int, frozenset[int]]:
    """Map each road to the frozenset of roads in its component."""

    grouped: dict[int, set[int]] = defaultdict(set)
    for start, reached in zip(membership["start_road_id"], membership["road_id"]):
        grouped[int(start)].add(int(reached))
    return {start: frozenset(members) for start, members in grouped.items()}
