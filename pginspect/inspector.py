"""
Inspector client
================

Runs catalog queries against a live server and maps driver failures onto
the ``pginspect.errors`` taxonomy.

    with Inspector(get_settings(), load_catalog()) as inspector:
        result = inspector.run('index_usage')
        graph = inspector.wait_graph()

The session is read-only and autocommit; each call is one round trip.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import psycopg2
from psycopg2 import errors as pg_errors

from pginspect import errors
from pginspect.catalog import Catalog, QuerySpec
from pginspect.config import Settings
from pginspect.waitgraph import LockRow, WaitGraph

logger = logging.getLogger(__name__)

# SQLSTATEs meaning "the object you named does not exist"
_MISSING_OBJECT = (
    pg_errors.UndefinedTable,       # 42P01
    pg_errors.UndefinedObject,      # 42704
    pg_errors.UndefinedFunction,    # 42883
    pg_errors.UndefinedColumn,      # 42703
    pg_errors.InvalidSchemaName,    # 3F000
)


@dataclass(frozen=True)
class QueryResult:
    name: str
    columns: Tuple[str, ...]
    rows: Tuple[Tuple[Any, ...], ...]
    elapsed_ms: float = 0.0

    def __len__(self):
        return len(self.rows)

    def records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def column(self, name) -> List[Any]:
        if name not in self.columns:
            raise errors.QueryError(f"result has no column {name!r}", query_name=self.name)
        index = self.columns.index(name)
        return [row[index] for row in self.rows]


def _server_message(exc):
    message = getattr(exc, 'pgerror', None) or str(exc)
    return message.strip()


def translate_error(exc, query_name=None) -> errors.InspectorError:
    """Map a psycopg2 exception to an inspector error."""
    message = _server_message(exc)
    if isinstance(exc, pg_errors.InsufficientPrivilege):
        return errors.PermissionError(message, query_name=query_name)
    if isinstance(exc, pg_errors.QueryCanceled):
        return errors.QueryError(f"statement timeout: {message}", query_name=query_name)
    if isinstance(exc, _MISSING_OBJECT):
        return errors.QueryError(message, query_name=query_name)
    if isinstance(exc, (psycopg2.OperationalError, psycopg2.InterfaceError)):
        return errors.ConnectionError(message, query_name=query_name)
    return errors.QueryError(message, query_name=query_name)


class Inspector:

    def __init__(self, settings: Settings, catalog: Catalog, connect=psycopg2.connect):
        self.settings = settings
        self.catalog = catalog
        self._connect = connect
        self._conn = None
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # -------------------------------------------------------------------------
    # connection
    # -------------------------------------------------------------------------

    def _connection(self, query_name=None):
        if self._conn is not None and not self._conn.closed:
            return self._conn
        logger.info("connecting to %s", self.settings.dsn_masked())
        try:
            conn = self._connect(**self.settings.connect_kwargs())
        except psycopg2.Error as exc:
            # unreachable host and failed authentication both land here
            error = errors.ConnectionError(_server_message(exc), query_name=query_name)
            logger.warning("connection failed: %s", error)
            raise error from exc
        conn.autocommit = True
        self._conn = conn
        return conn

    def close(self):
        with self._lock:
            if self._conn is not None and not self._conn.closed:
                self._conn.close()
            self._conn = None

    # -------------------------------------------------------------------------
    # queries
    # -------------------------------------------------------------------------

    def spec(self, query_name) -> QuerySpec:
        spec = self.catalog.get(query_name)
        if spec is None:
            raise errors.QueryError("unknown query", query_name=query_name)
        return spec

    def run(self, query_name, **params) -> QueryResult:
        spec = self.spec(query_name)
        missing = [p for p in spec.params if params.get(p) in (None, '')]
        if missing:
            raise errors.QueryError(f"missing parameter(s): {', '.join(missing)}",
                                    query_name=query_name)
        bind = {p: params[p] for p in spec.params} if spec.params else None

        with self._lock:
            conn = self._connection(query_name)
            start_time = time.time()
            try:
                with conn.cursor() as cur:
                    cur.execute(spec.sql, bind)
                    columns = tuple(desc[0] for desc in cur.description or ())
                    rows = tuple(tuple(row) for row in cur.fetchall()) if columns else ()
            except psycopg2.Error as exc:
                error = translate_error(exc, query_name=query_name)
                logger.warning("query failed: %s", error)
                if conn.closed:
                    self._conn = None
                raise error from exc
            elapsed = (time.time() - start_time) * 1000

        logger.debug("%s: %d rows in %.2fms", query_name, len(rows), elapsed)
        if spec.columns and columns != spec.columns:
            logger.warning("%s: expected columns %s, got %s",
                           query_name, list(spec.columns), list(columns))
        return QueryResult(name=query_name, columns=columns, rows=rows, elapsed_ms=elapsed)

    def run_category(self, category) -> List[QueryResult]:
        """Run every parameterless query of one category."""
        specs = self.catalog.by_category(category)
        if not specs:
            raise errors.QueryError(f"unknown category {category!r}")
        return [self.run(spec.name) for spec in specs if not spec.params]

    def server_info(self) -> Optional[Dict[str, Any]]:
        records = self.run('server_version').records()
        return records[0] if records else None

    # -------------------------------------------------------------------------
    # locks
    # -------------------------------------------------------------------------

    def lock_snapshot(self) -> List[LockRow]:
        result = self.run('lock_snapshot')
        return [LockRow.from_record(record) for record in result.records()]

    def wait_graph(self, strict=False) -> WaitGraph:
        graph = WaitGraph.from_snapshot(self.lock_snapshot(), strict=strict)
        cycles = graph.find_cycles()
        if cycles:
            logger.warning("deadlock candidates: %s", cycles)
        return graph
