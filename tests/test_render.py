import datetime
import decimal
import json

from pginspect.inspector import QueryResult
from pginspect.render import (
    render_catalog,
    render_json,
    render_table,
    render_wait_graph,
    render_wait_graph_json,
    section,
)
from pginspect.waitgraph import LockEdge, WaitGraph


def test_render_table_uses_psql_format():
    result = QueryResult('dead_tuples', ('table_name', 'dead_tuples'), (('orders', 12),), 1.5)
    text = render_table(result, "Dead tuple ratio per table")

    assert text.startswith(">> Dead tuple ratio per table")
    assert "| table_name" in text
    assert "+----" in text
    assert "(1 rows, 1.50ms)" in text


def test_render_table_empty():
    assert render_table(QueryResult('locks', ('pid',), ())) == "(no rows)"


def test_render_json_stringifies_server_types():
    result = QueryResult(
        'activity',
        ('pid', 'age', 'started', 'ratio'),
        ((7, datetime.timedelta(seconds=3), datetime.datetime(2024, 1, 2, 3, 4, 5),
          decimal.Decimal('12.5')),),
        2.0,
    )
    payload = json.loads(render_json(result))

    assert payload['name'] == 'activity'
    assert payload['columns'] == ['pid', 'age', 'started', 'ratio']
    assert payload['rows'] == [[7, 3.0, '2024-01-02T03:04:05', '12.5']]


def test_render_wait_graph_lists_cycles():
    graph = WaitGraph([LockEdge(1, 2, ('relation',), 'RowExclusiveLock'),
                       LockEdge(2, 1, ('relation',), 'ShareLock')])
    text = render_wait_graph(graph)

    assert "(2 edges)" in text
    assert "deadlock candidates:" in text
    assert "1 -> 2 -> 1" in text
    assert "mutually waiting: 1, 2" in text


def test_render_wait_graph_without_cycles():
    graph = WaitGraph([LockEdge(1, 2, ('relation',), 'RowExclusiveLock')])
    text = render_wait_graph(graph)
    assert "head blockers: 2" in text
    assert "no deadlock candidates" in text


def test_render_empty_wait_graph():
    assert render_wait_graph(WaitGraph([])) == "(no lock waits)"


def test_render_wait_graph_json():
    graph = WaitGraph([LockEdge(1, 2), LockEdge(2, 3), LockEdge(3, 1)])
    payload = json.loads(render_wait_graph_json(graph))
    assert len(payload['edges']) == 3
    assert payload['cycles'] == [[1, 2, 3]]
    assert payload['deadlock_sets'] == [[1, 2, 3]]
    assert payload['head_blockers'] == []


def test_render_catalog(catalog):
    text = render_catalog(catalog)
    assert 'buffer_cache_summary' in text
    assert 'pg_buffercache' in text


def test_section():
    assert " index_usage" in section("index_usage")
