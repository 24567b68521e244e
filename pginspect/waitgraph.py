"""
Lock wait-for graph
===================

Builds a directed graph ``waiting pid -> blocking pid`` from a pg_locks
snapshot and looks for cycles in it.

A cycle is a deadlock candidate: the sessions in it wait on each other at
the moment the snapshot was taken. The server's own detector runs after
``deadlock_timeout`` and aborts one of them, so a cycle seen here is a
transient observation. Nothing here tries to resolve it.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Hashable, Iterable, List, Optional, Tuple

import networkx as nx

from pginspect import errors

# pg_locks columns that together identify a lockable object
OBJECT_COLUMNS = (
    'locktype', 'database', 'relation', 'page', 'tuple', 'virtualxid',
    'transactionid', 'classid', 'objid', 'objsubid',
)

# Table-level lock conflict matrix (weakest -> strongest)
# https://www.postgresql.org/docs/current/explicit-locking.html
_ALL_MODES = (
    'AccessShareLock',
    'RowShareLock',
    'RowExclusiveLock',
    'ShareUpdateExclusiveLock',
    'ShareLock',
    'ShareRowExclusiveLock',
    'ExclusiveLock',
    'AccessExclusiveLock',
)

LOCK_CONFLICTS = {
    'AccessShareLock': {'AccessExclusiveLock'},
    'RowShareLock': {'ExclusiveLock', 'AccessExclusiveLock'},
    'RowExclusiveLock': {
        'ShareLock', 'ShareRowExclusiveLock', 'ExclusiveLock', 'AccessExclusiveLock',
    },
    'ShareUpdateExclusiveLock': {
        'ShareUpdateExclusiveLock', 'ShareLock', 'ShareRowExclusiveLock',
        'ExclusiveLock', 'AccessExclusiveLock',
    },
    'ShareLock': {
        'RowExclusiveLock', 'ShareUpdateExclusiveLock', 'ShareRowExclusiveLock',
        'ExclusiveLock', 'AccessExclusiveLock',
    },
    'ShareRowExclusiveLock': {
        'RowExclusiveLock', 'ShareUpdateExclusiveLock', 'ShareLock',
        'ShareRowExclusiveLock', 'ExclusiveLock', 'AccessExclusiveLock',
    },
    'ExclusiveLock': set(_ALL_MODES[1:]),
    'AccessExclusiveLock': set(_ALL_MODES),
    # serializable predicate locks never block
    'SIReadLock': set(),
}


def modes_conflict(requested, held):
    """True if ``requested`` cannot be granted while ``held`` is held.

    Unknown modes are treated as conflicting.
    """
    if requested == 'SIReadLock' or held == 'SIReadLock':
        return False
    conflicts = LOCK_CONFLICTS.get(requested)
    if conflicts is None or held not in LOCK_CONFLICTS:
        return True
    return held in conflicts


@dataclass(frozen=True)
class LockRow:
    """One pg_locks row."""
    pid: int
    locktype: str
    object: Tuple[Hashable, ...]
    mode: str
    granted: bool

    @classmethod
    def from_record(cls, record) -> "LockRow":
        pid = record.get('pid')
        if not _is_pid(pid):
            raise errors.GraphError(f"lock row without a valid pid: {pid!r}",
                                    query_name='lock_snapshot')
        locktype = record.get('locktype')
        if not locktype:
            raise errors.GraphError(f"lock row for pid {pid} has no lockable object",
                                    query_name='lock_snapshot')
        key = tuple(record.get(column) for column in OBJECT_COLUMNS)
        return cls(pid=pid, locktype=locktype, object=key,
                   mode=record.get('mode'), granted=bool(record.get('granted')))


@dataclass(frozen=True)
class LockEdge:
    waiting_pid: int
    blocking_pid: int
    object: Optional[Tuple[Hashable, ...]] = None
    mode: Optional[str] = None


def _is_pid(value):
    return isinstance(value, int) and not isinstance(value, bool)


def edges_from_snapshot(rows: Iterable[LockRow], strict=False) -> List[LockEdge]:
    """One edge per (waiter, holder, object) for every ungranted request.

    With ``strict`` only holders whose granted mode conflicts with the
    requested mode count as blockers.
    """
    rows = list(rows)
    holders = defaultdict(list)
    for row in rows:
        if row.granted:
            holders[row.object].append(row)

    edges = []
    seen = set()
    for row in rows:
        if row.granted:
            continue
        for holder in holders.get(row.object, ()):
            if holder.pid == row.pid:
                continue
            if strict and not modes_conflict(row.mode, holder.mode):
                continue
            key = (row.pid, holder.pid, row.object)
            if key in seen:
                continue
            seen.add(key)
            edges.append(LockEdge(row.pid, holder.pid, row.object, row.mode))
    return edges


_IN_PROGRESS = 1
_DONE = 2


class WaitGraph:
    """Directed multigraph over backend pids.

    Backed by ``nx.MultiDiGraph`` with one keyed edge per LockEdge, so
    parallel edges between the same two pids (waiting on different
    objects) are kept and ``len(graph)`` equals the number of edges it was
    built from.
    """

    def __init__(self, edges: Iterable[LockEdge], nodes: Optional[Iterable[int]] = None):
        self.edges: Tuple[LockEdge, ...] = tuple(edges)
        declared = None if nodes is None else set(nodes)

        self.graph = nx.MultiDiGraph()
        if declared is not None:
            self.graph.add_nodes_from(sorted(declared))

        for key, edge in enumerate(self.edges):
            for pid in (edge.waiting_pid, edge.blocking_pid):
                if not _is_pid(pid):
                    raise errors.GraphError(f"edge references an invalid pid: {pid!r}",
                                            query_name='lock_snapshot')
                if declared is not None and pid not in declared:
                    raise errors.GraphError(f"edge references pid {pid} absent from snapshot",
                                            query_name='lock_snapshot')
            if edge.waiting_pid == edge.blocking_pid:
                raise errors.GraphError(f"pid {edge.waiting_pid} waits on itself",
                                        query_name='lock_snapshot')
            self.graph.add_edge(edge.waiting_pid, edge.blocking_pid, key=key,
                                object=edge.object, mode=edge.mode)

    @classmethod
    def from_snapshot(cls, rows: Iterable[LockRow], strict=False) -> "WaitGraph":
        rows = list(rows)
        return cls(edges_from_snapshot(rows, strict=strict), nodes={row.pid for row in rows})

    def __len__(self):
        return self.graph.number_of_edges()

    @property
    def edge_count(self):
        return self.graph.number_of_edges()

    @property
    def nodes(self):
        return set(self.graph.nodes)

    def is_empty(self):
        return self.graph.number_of_edges() == 0

    def blockers_of(self, pid) -> List[int]:
        if pid not in self.graph:
            return []
        return sorted(self.graph.successors(pid))

    def waiters_of(self, pid) -> List[int]:
        if pid not in self.graph:
            return []
        return sorted(self.graph.predecessors(pid))

    def head_blockers(self) -> List[int]:
        """Pids that block someone but wait on nobody."""
        return sorted(pid for pid in self.graph.nodes
                      if self.graph.in_degree(pid) and not self.graph.out_degree(pid))

    def find_cycles(self) -> List[List[int]]:
        """Deadlock candidates, each reported once.

        Depth-first traversal with in-progress/done marking; every back edge
        closes a cycle. A cycle is rotated to start at its smallest pid.

        Only cycles closed by a back edge are listed. A cycle that re-enters
        an already finished pid (1->2, 2->1, 1->3, 3->2 yields [1, 2] but not
        [1, 3, 2]) is not; ``deadlock_sets()`` still groups all of them.
        """
        state = {}
        found = set()
        cycles = []

        for root in sorted(self.graph.nodes):
            if root in state or not self.graph.out_degree(root):
                continue
            state[root] = _IN_PROGRESS
            path = [root]
            stack = [(root, iter(self.blockers_of(root)))]
            while stack:
                pid, successors = stack[-1]
                nxt = next(successors, None)
                if nxt is None:
                    stack.pop()
                    path.pop()
                    state[pid] = _DONE
                    continue
                mark = state.get(nxt)
                if mark is None:
                    state[nxt] = _IN_PROGRESS
                    path.append(nxt)
                    stack.append((nxt, iter(self.blockers_of(nxt))))
                elif mark == _IN_PROGRESS:
                    cycle = _canonical(path[path.index(nxt):])
                    if cycle not in found:
                        found.add(cycle)
                        cycles.append(list(cycle))
        return cycles

    def deadlock_sets(self) -> List[List[int]]:
        """Groups of pids that all wait on each other, directly or not.

        Strongly connected components with more than one pid, sorted.
        """
        components = [sorted(c) for c in nx.strongly_connected_components(self.graph)
                      if len(c) > 1]
        return sorted(components)


def _canonical(cycle):
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])
