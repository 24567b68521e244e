"""
Query catalog
=============

The fixed set of read-only introspection statements the inspector can run.
Each entry targets a server administrative view or extension:

- pg_buffercache        : shared buffer contents
- pg_current_wal_lsn()  : WAL position, pg_ls_waldir() for segments
- pg_locks              : heavyweight, advisory and predicate (SIRead) locks
- pg_stat_progress_vacuum / pg_stat_user_tables : vacuum and autovacuum
- pg_stat_user_indexes, pgstatindex() : index usage and bloat
- pg_stat_statements    : per-statement execution statistics

The catalog is built once by ``load_catalog()`` and handed to the
inspector. Entries are frozen; the mapping is read-only.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


@dataclass(frozen=True)
class QuerySpec:
    name: str
    sql: str
    columns: Tuple[str, ...]
    category: str
    description: str = ""
    params: Tuple[str, ...] = ()
    extension: Optional[str] = None


class Catalog:
    """Read-only name -> QuerySpec table."""

    def __init__(self, specs):
        table = {}
        for spec in specs:
            if spec.name in table:
                raise ValueError(f"duplicate query name: {spec.name}")
            table[spec.name] = spec
        self._specs: Mapping[str, QuerySpec] = MappingProxyType(table)

    def __contains__(self, name):
        return name in self._specs

    def __getitem__(self, name) -> QuerySpec:
        return self._specs[name]

    def __iter__(self):
        return iter(self._specs.values())

    def __len__(self):
        return len(self._specs)

    def get(self, name) -> Optional[QuerySpec]:
        return self._specs.get(name)

    def names(self):
        return list(self._specs)

    def categories(self):
        seen = []
        for spec in self._specs.values():
            if spec.category not in seen:
                seen.append(spec.category)
        return seen

    def by_category(self, category):
        return [spec for spec in self._specs.values() if spec.category == category]


# =============================================================================
# server
# =============================================================================

SERVER_VERSION = QuerySpec(
    name='server_version',
    category='server',
    description="Server version, connected role and database",
    sql="""
        SELECT
            version() as version,
            current_user as role_name,
            current_database() as database,
            pg_is_in_recovery() as in_recovery
    """,
    columns=('version', 'role_name', 'database', 'in_recovery'),
)

# =============================================================================
# buffers
# =============================================================================

BUFFER_CACHE_SUMMARY = QuerySpec(
    name='buffer_cache_summary',
    category='buffers',
    description="Relations occupying the most shared buffers",
    extension='pg_buffercache',
    sql="""
        SELECT
            n.nspname as schema_name,
            c.relname as relation,
            count(*) as buffers,
            count(*) FILTER (WHERE b.isdirty) as dirty,
            round(avg(b.usagecount), 2) as avg_usage,
            pg_size_pretty(count(*) * current_setting('block_size')::bigint) as cached_size
        FROM pg_buffercache b
        JOIN pg_class c
          ON b.relfilenode = pg_relation_filenode(c.oid)
         AND b.reldatabase IN (0, (SELECT oid FROM pg_database
                                   WHERE datname = current_database()))
        JOIN pg_namespace n ON n.oid = c.relnamespace
        GROUP BY n.nspname, c.relname
        ORDER BY buffers DESC
        LIMIT 20
    """,
    columns=('schema_name', 'relation', 'buffers', 'dirty', 'avg_usage', 'cached_size'),
)

BUFFER_CACHE_USAGE = QuerySpec(
    name='buffer_cache_usage',
    category='buffers',
    description="Shared buffers grouped by clock-sweep usage count",
    extension='pg_buffercache',
    sql="""
        SELECT
            usagecount,
            count(*) as buffers,
            count(*) FILTER (WHERE isdirty) as dirty
        FROM pg_buffercache
        GROUP BY usagecount
        ORDER BY usagecount NULLS FIRST
    """,
    columns=('usagecount', 'buffers', 'dirty'),
)

CACHE_HIT_RATE = QuerySpec(
    name='cache_hit_rate',
    category='buffers',
    description="Heap block cache hit rate per table",
    sql="""
        SELECT
            relname as table_name,
            heap_blks_hit as cache_hits,
            heap_blks_read as disk_reads,
            CASE
                WHEN heap_blks_hit + heap_blks_read = 0 THEN NULL
                ELSE ROUND(100.0 * heap_blks_hit / (heap_blks_hit + heap_blks_read), 1)
            END as hit_rate_pct
        FROM pg_statio_user_tables
        ORDER BY heap_blks_hit + heap_blks_read DESC
        LIMIT 20
    """,
    columns=('table_name', 'cache_hits', 'disk_reads', 'hit_rate_pct'),
)

# =============================================================================
# wal
# =============================================================================

WAL_POSITION = QuerySpec(
    name='wal_position',
    category='wal',
    description="Current WAL write/insert position and segment file",
    sql="""
        SELECT
            pg_current_wal_lsn() as current_lsn,
            pg_current_wal_insert_lsn() as insert_lsn,
            pg_walfile_name(pg_current_wal_lsn()) as current_segment,
            pg_wal_lsn_diff(pg_current_wal_lsn(), '0/0')::bigint as bytes_since_origin
    """,
    columns=('current_lsn', 'insert_lsn', 'current_segment', 'bytes_since_origin'),
)

WAL_SEGMENTS = QuerySpec(
    name='wal_segments',
    category='wal',
    description="Most recent files in pg_wal",
    sql="""
        SELECT
            name,
            size as size_bytes,
            pg_size_pretty(size) as size,
            modification
        FROM pg_ls_waldir()
        ORDER BY name DESC
        LIMIT 20
    """,
    columns=('name', 'size_bytes', 'size', 'modification'),
)

# =============================================================================
# locks
# =============================================================================

LOCKS = QuerySpec(
    name='locks',
    category='locks',
    description="All locks held or awaited by other sessions",
    sql="""
        SELECT
            l.pid,
            l.locktype,
            l.relation::regclass as relation,
            l.mode,
            l.granted,
            a.usename,
            a.state,
            LEFT(a.query, 50) as query
        FROM pg_locks l
        LEFT JOIN pg_stat_activity a ON l.pid = a.pid
        WHERE l.pid <> pg_backend_pid()
        ORDER BY l.pid, l.granted DESC
    """,
    columns=('pid', 'locktype', 'relation', 'mode', 'granted', 'usename', 'state', 'query'),
)

LOCK_WAITS = QuerySpec(
    name='lock_waits',
    category='locks',
    description="Sessions waiting on a lock and the pids blocking them",
    sql="""
        SELECT
            a.pid as waiting_pid,
            pg_blocking_pids(a.pid) as blocking_pids,
            a.wait_event_type,
            a.wait_event,
            now() - a.query_start as waiting_for,
            LEFT(a.query, 50) as query
        FROM pg_stat_activity a
        WHERE cardinality(pg_blocking_pids(a.pid)) > 0
        ORDER BY waiting_for DESC
    """,
    columns=('waiting_pid', 'blocking_pids', 'wait_event_type', 'wait_event',
             'waiting_for', 'query'),
)

LOCK_SNAPSHOT = QuerySpec(
    name='lock_snapshot',
    category='locks',
    description="Raw pg_locks rows used to build the wait-for graph",
    sql="""
        SELECT
            pid,
            locktype,
            database,
            relation,
            page,
            tuple,
            virtualxid,
            transactionid::text as transactionid,
            classid,
            objid,
            objsubid,
            mode,
            granted
        FROM pg_locks
        WHERE pid IS NOT NULL
    """,
    columns=('pid', 'locktype', 'database', 'relation', 'page', 'tuple', 'virtualxid',
             'transactionid', 'classid', 'objid', 'objsubid', 'mode', 'granted'),
)

RELATION_LOCKS = QuerySpec(
    name='relation_locks',
    category='locks',
    description="Table and tuple locks on one relation",
    params=('relation',),
    sql="""
        SELECT
            l.pid,
            l.locktype,
            l.page,
            l.tuple,
            l.mode,
            l.granted,
            a.state
        FROM pg_locks l
        LEFT JOIN pg_stat_activity a ON l.pid = a.pid
        WHERE l.relation = %(relation)s::regclass
        ORDER BY l.pid
    """,
    columns=('pid', 'locktype', 'page', 'tuple', 'mode', 'granted', 'state'),
)

# =============================================================================
# advisory / predicate
# =============================================================================

ADVISORY_LOCKS = QuerySpec(
    name='advisory_locks',
    category='advisory',
    description="Application-level advisory locks",
    sql="""
        SELECT
            l.pid,
            l.classid,
            l.objid,
            l.objsubid,
            l.mode,
            l.granted,
            a.usename,
            a.state
        FROM pg_locks l
        LEFT JOIN pg_stat_activity a ON l.pid = a.pid
        WHERE l.locktype = 'advisory'
        ORDER BY l.classid, l.objid, l.granted DESC
    """,
    columns=('pid', 'classid', 'objid', 'objsubid', 'mode', 'granted', 'usename', 'state'),
)

PREDICATE_LOCKS = QuerySpec(
    name='predicate_locks',
    category='predicate',
    description="SIRead predicate locks held by serializable transactions",
    sql="""
        SELECT
            l.pid,
            l.locktype,
            l.relation::regclass as relation,
            l.page,
            l.tuple,
            a.usename
        FROM pg_locks l
        LEFT JOIN pg_stat_activity a ON l.pid = a.pid
        WHERE l.mode = 'SIReadLock'
        ORDER BY l.pid
    """,
    columns=('pid', 'locktype', 'relation', 'page', 'tuple', 'usename'),
)

# =============================================================================
# vacuum
# =============================================================================

VACUUM_PROGRESS = QuerySpec(
    name='vacuum_progress',
    category='vacuum',
    description="Running VACUUM / autovacuum workers and their phase",
    sql="""
        SELECT
            p.pid,
            p.datname,
            p.relid::regclass as relation,
            p.phase,
            p.heap_blks_total,
            p.heap_blks_scanned,
            p.heap_blks_vacuumed,
            CASE
                WHEN p.heap_blks_total = 0 THEN NULL
                ELSE ROUND(100.0 * p.heap_blks_scanned / p.heap_blks_total, 1)
            END as scanned_pct,
            p.index_vacuum_count
        FROM pg_stat_progress_vacuum p
        ORDER BY p.pid
    """,
    columns=('pid', 'datname', 'relation', 'phase', 'heap_blks_total', 'heap_blks_scanned',
             'heap_blks_vacuumed', 'scanned_pct', 'index_vacuum_count'),
)

AUTOVACUUM_STATS = QuerySpec(
    name='autovacuum_stats',
    category='vacuum',
    description="Vacuum and analyze history per table",
    sql="""
        SELECT
            relname as table_name,
            n_live_tup as live_tuples,
            n_dead_tup as dead_tuples,
            last_vacuum,
            last_autovacuum,
            last_analyze,
            last_autoanalyze,
            vacuum_count,
            autovacuum_count
        FROM pg_stat_user_tables
        ORDER BY n_dead_tup DESC
        LIMIT 20
    """,
    columns=('table_name', 'live_tuples', 'dead_tuples', 'last_vacuum', 'last_autovacuum',
             'last_analyze', 'last_autoanalyze', 'vacuum_count', 'autovacuum_count'),
)

AUTOVACUUM_SETTINGS = QuerySpec(
    name='autovacuum_settings',
    category='vacuum',
    description="autovacuum_* server settings",
    sql="""
        SELECT name, setting, short_desc
        FROM pg_settings
        WHERE name LIKE 'autovacuum%'
        ORDER BY name
    """,
    columns=('name', 'setting', 'short_desc'),
)

DEAD_TUPLES = QuerySpec(
    name='dead_tuples',
    category='vacuum',
    description="Dead tuple ratio per table",
    sql="""
        SELECT
            relname as table_name,
            n_live_tup as live_tuples,
            n_dead_tup as dead_tuples,
            CASE
                WHEN n_live_tup + n_dead_tup = 0 THEN 0
                ELSE ROUND(100.0 * n_dead_tup / (n_live_tup + n_dead_tup), 2)
            END as dead_pct
        FROM pg_stat_user_tables
        ORDER BY n_dead_tup DESC
        LIMIT 20
    """,
    columns=('table_name', 'live_tuples', 'dead_tuples', 'dead_pct'),
)

# =============================================================================
# indexes
# =============================================================================

INDEX_USAGE = QuerySpec(
    name='index_usage',
    category='indexes',
    description="Scan counts and size of every user index",
    sql="""
        SELECT
            schemaname as schema_name,
            relname as table_name,
            indexrelname as index_name,
            pg_relation_size(indexrelid) as size_bytes,
            pg_size_pretty(pg_relation_size(indexrelid)) as size,
            idx_scan as scans,
            idx_tup_read as tuples_read,
            idx_tup_fetch as tuples_fetched
        FROM pg_stat_user_indexes
        ORDER BY idx_scan DESC, pg_relation_size(indexrelid) DESC
    """,
    columns=('schema_name', 'table_name', 'index_name', 'size_bytes', 'size', 'scans',
             'tuples_read', 'tuples_fetched'),
)

UNUSED_INDEXES = QuerySpec(
    name='unused_indexes',
    category='indexes',
    description="Non-unique indexes scanned fewer than 10 times",
    sql="""
        SELECT
            s.relname as table_name,
            s.indexrelname as index_name,
            pg_size_pretty(pg_relation_size(s.indexrelid)) as size,
            s.idx_scan as scans,
            CASE
                WHEN s.idx_scan = 0 THEN 'UNUSED'
                ELSE 'LOW USAGE'
            END as status
        FROM pg_stat_user_indexes s
        JOIN pg_index i ON i.indexrelid = s.indexrelid
        WHERE NOT i.indisprimary
          AND NOT i.indisunique
          AND s.idx_scan < 10
        ORDER BY pg_relation_size(s.indexrelid) DESC
    """,
    columns=('table_name', 'index_name', 'size', 'scans', 'status'),
)

INDEX_BLOAT = QuerySpec(
    name='index_bloat',
    category='indexes',
    description="B-tree leaf density and fragmentation of one index",
    extension='pgstattuple',
    params=('index',),
    sql="""
        SELECT
            %(index)s::text as index_name,
            pg_size_pretty(index_size) as total_size,
            avg_leaf_density as leaf_density_pct,
            leaf_fragmentation as fragmentation_pct
        FROM pgstatindex(%(index)s)
    """,
    columns=('index_name', 'total_size', 'leaf_density_pct', 'fragmentation_pct'),
)

# =============================================================================
# tables
# =============================================================================

TABLE_SIZES = QuerySpec(
    name='table_sizes',
    category='tables',
    description="Heap, index and total size of user tables",
    sql="""
        SELECT
            n.nspname as schema_name,
            c.relname as table_name,
            pg_total_relation_size(c.oid) as total_bytes,
            pg_size_pretty(pg_table_size(c.oid)) as table_size,
            pg_size_pretty(pg_indexes_size(c.oid)) as indexes_size,
            pg_size_pretty(pg_total_relation_size(c.oid)) as total_size,
            (SELECT count(*) FROM pg_index WHERE indrelid = c.oid) as index_count
        FROM pg_class c
        JOIN pg_namespace n ON c.relnamespace = n.oid
        WHERE c.relkind = 'r'
          AND n.nspname NOT IN ('pg_catalog', 'information_schema')
          AND n.nspname NOT LIKE 'pg_toast%'
        ORDER BY pg_total_relation_size(c.oid) DESC
        LIMIT 20
    """,
    columns=('schema_name', 'table_name', 'total_bytes', 'table_size', 'indexes_size',
             'total_size', 'index_count'),
)

RELATION_STATS = QuerySpec(
    name='relation_stats',
    category='tables',
    description="Planner estimates, size and scan counters of one relation",
    params=('relation',),
    sql="""
        SELECT
            c.relname as relation,
            c.relkind,
            c.reltuples::bigint as estimated_rows,
            c.relpages as pages,
            pg_size_pretty(pg_total_relation_size(c.oid)) as total_size,
            s.n_live_tup as live_tuples,
            s.n_dead_tup as dead_tuples,
            s.seq_scan,
            s.idx_scan,
            s.last_autovacuum
        FROM pg_class c
        LEFT JOIN pg_stat_all_tables s ON s.relid = c.oid
        WHERE c.oid = %(relation)s::regclass
    """,
    columns=('relation', 'relkind', 'estimated_rows', 'pages', 'total_size', 'live_tuples',
             'dead_tuples', 'seq_scan', 'idx_scan', 'last_autovacuum'),
)

# =============================================================================
# activity / statements
# =============================================================================

ACTIVITY = QuerySpec(
    name='activity',
    category='activity',
    description="Non-idle sessions and what they wait on",
    sql="""
        SELECT
            pid,
            usename,
            state,
            wait_event_type,
            wait_event,
            now() - query_start as age,
            LEFT(regexp_replace(query, '\\s+', ' ', 'g'), 80) as query
        FROM pg_stat_activity
        WHERE state <> 'idle'
          AND pid <> pg_backend_pid()
        ORDER BY age DESC NULLS LAST
    """,
    columns=('pid', 'usename', 'state', 'wait_event_type', 'wait_event', 'age', 'query'),
)

TOP_STATEMENTS = QuerySpec(
    name='top_statements',
    category='statements',
    description="Statements with the highest total execution time",
    extension='pg_stat_statements',
    sql="""
        SELECT
            LEFT(query, 50) as query_preview,
            calls,
            ROUND(total_exec_time::numeric, 2) as total_time_ms,
            ROUND(mean_exec_time::numeric, 2) as mean_time_ms,
            rows,
            shared_blks_hit as cache_hits,
            shared_blks_read as disk_reads
        FROM pg_stat_statements
        WHERE dbid = (SELECT oid FROM pg_database WHERE datname = current_database())
        ORDER BY total_exec_time DESC
        LIMIT 10
    """,
    columns=('query_preview', 'calls', 'total_time_ms', 'mean_time_ms', 'rows',
             'cache_hits', 'disk_reads'),
)


DEFAULT_QUERIES = (
    SERVER_VERSION,
    BUFFER_CACHE_SUMMARY,
    BUFFER_CACHE_USAGE,
    CACHE_HIT_RATE,
    WAL_POSITION,
    WAL_SEGMENTS,
    LOCKS,
    LOCK_WAITS,
    LOCK_SNAPSHOT,
    RELATION_LOCKS,
    ADVISORY_LOCKS,
    PREDICATE_LOCKS,
    VACUUM_PROGRESS,
    AUTOVACUUM_STATS,
    AUTOVACUUM_SETTINGS,
    DEAD_TUPLES,
    INDEX_USAGE,
    UNUSED_INDEXES,
    INDEX_BLOAT,
    TABLE_SIZES,
    RELATION_STATS,
    ACTIVITY,
    TOP_STATEMENTS,
)


def load_catalog(specs=DEFAULT_QUERIES) -> Catalog:
    return Catalog(specs)
