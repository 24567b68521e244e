import threading

import psycopg2
import pytest
from psycopg2 import errors as pg_errors

from pginspect import errors
from pginspect.inspector import QueryResult, translate_error


def test_run_returns_rows_and_columns(make_inspector):
    inspector = make_inspector({
        'dead_tuples': (('table_name', 'live_tuples', 'dead_tuples', 'dead_pct'),
                        [('orders', 1000, 250, 20.0)]),
    })
    result = inspector.run('dead_tuples')

    assert isinstance(result, QueryResult)
    assert result.columns == ('table_name', 'live_tuples', 'dead_tuples', 'dead_pct')
    assert result.rows == (('orders', 1000, 250, 20.0),)
    assert result.records() == [
        {'table_name': 'orders', 'live_tuples': 1000, 'dead_tuples': 250, 'dead_pct': 20.0},
    ]
    assert result.column('dead_tuples') == [250]


def test_session_is_read_only_and_autocommit(make_inspector):
    inspector = make_inspector()
    inspector.run('activity')

    conn = inspector.connections[0]
    assert conn.autocommit is True
    assert 'default_transaction_read_only=on' in conn.kwargs['options']
    assert 'statement_timeout=10000' in conn.kwargs['options']


def test_connection_is_reused_and_closed(make_inspector):
    with make_inspector() as inspector:
        inspector.run('activity')
        inspector.run('locks')
        assert len(inspector.connections) == 1
    assert inspector.connections[0].closed


def test_parameterless_query_is_sent_without_bind_values(make_inspector):
    inspector = make_inspector()
    inspector.run('autovacuum_settings')
    sql, params = inspector.connections[0].executed[0]
    assert params is None
    assert "LIKE 'autovacuum%'" in sql


def test_relation_parameter_is_bound(make_inspector):
    inspector = make_inspector()
    inspector.run('relation_stats', relation='orders')
    _, params = inspector.connections[0].executed[0]
    assert params == {'relation': 'orders'}


def test_unknown_query_name(make_inspector):
    with pytest.raises(errors.QueryError) as excinfo:
        make_inspector().run('no_such_query')
    assert excinfo.value.query_name == 'no_such_query'


def test_missing_parameter(make_inspector):
    with pytest.raises(errors.QueryError, match="relation"):
        make_inspector().run('relation_stats')


def test_nonexistent_relation_is_query_error(make_inspector):
    inspector = make_inspector({
        'relation_stats': pg_errors.UndefinedTable('relation "nope" does not exist'),
    })
    with pytest.raises(errors.QueryError) as excinfo:
        inspector.run('relation_stats', relation='nope')

    assert excinfo.value.query_name == 'relation_stats'
    assert 'relation "nope" does not exist' in str(excinfo.value)
    assert excinfo.value.exit_code == errors.EXIT_QUERY


def test_missing_extension_is_query_error(make_inspector):
    inspector = make_inspector({
        'buffer_cache_summary': pg_errors.UndefinedTable('relation "pg_buffercache" does not exist'),
    })
    with pytest.raises(errors.QueryError):
        inspector.run('buffer_cache_summary')


def test_insufficient_privilege_is_permission_error(make_inspector):
    inspector = make_inspector({
        'wal_segments': pg_errors.InsufficientPrivilege('permission denied for function pg_ls_waldir'),
    })
    with pytest.raises(errors.PermissionError) as excinfo:
        inspector.run('wal_segments')
    assert excinfo.value.exit_code == errors.EXIT_PERMISSION
    assert 'pg_ls_waldir' in excinfo.value.message


def test_unreachable_server_is_connection_error(make_inspector):
    inspector = make_inspector(connect_error=psycopg2.OperationalError('could not connect to server'))
    with pytest.raises(errors.ConnectionError) as excinfo:
        inspector.run('activity')
    assert excinfo.value.exit_code == errors.EXIT_CONNECTION
    assert excinfo.value.query_name == 'activity'
    assert str(excinfo.value) == '[activity] could not connect to server'


def test_failed_query_is_not_retried(make_inspector):
    inspector = make_inspector({'activity': pg_errors.UndefinedTable('boom')})
    with pytest.raises(errors.QueryError):
        inspector.run('activity')
    assert len(inspector.connections[0].executed) == 1


@pytest.mark.parametrize('exc, expected', [
    (pg_errors.QueryCanceled('canceling statement due to statement timeout'), errors.QueryError),
    (pg_errors.UndefinedFunction('function pgstatindex(unknown) does not exist'), errors.QueryError),
    (pg_errors.InsufficientPrivilege('permission denied'), errors.PermissionError),
    (psycopg2.OperationalError('server closed the connection unexpectedly'), errors.ConnectionError),
    (psycopg2.InterfaceError('connection already closed'), errors.ConnectionError),
    (psycopg2.DataError('invalid input syntax'), errors.QueryError),
])
def test_translate_error(exc, expected):
    error = translate_error(exc, query_name='q')
    assert type(error) is expected
    assert error.query_name == 'q'


def test_lock_snapshot_and_wait_graph(make_inspector, catalog):
    columns = catalog['lock_snapshot'].columns

    def lock(pid, xid, mode, granted):
        values = dict.fromkeys(columns)
        values.update(pid=pid, locktype='transactionid', transactionid=xid,
                      mode=mode, granted=granted)
        return tuple(values[c] for c in columns)

    inspector = make_inspector({
        'lock_snapshot': (columns, [
            lock(1, '700', 'ExclusiveLock', True),
            lock(2, '701', 'ExclusiveLock', True),
            lock(3, '702', 'ExclusiveLock', True),
            lock(1, '701', 'ShareLock', False),
            lock(2, '702', 'ShareLock', False),
            lock(3, '700', 'ShareLock', False),
        ]),
    })
    graph = inspector.wait_graph()

    assert len(graph) == 3
    assert graph.find_cycles() == [[1, 2, 3]]


def test_run_category_skips_parameterized_queries(make_inspector, catalog):
    results = make_inspector().run_category('tables')
    assert [r.name for r in results] == ['table_sizes']


def test_run_unknown_category(make_inspector):
    with pytest.raises(errors.QueryError):
        make_inspector().run_category('nothing')


def test_concurrent_calls_do_not_share_results(make_inspector):
    def responder(tag):
        return lambda params: (('table_name',), [(tag,)])

    first = make_inspector({'dead_tuples': responder('first')})
    second = make_inspector({'dead_tuples': responder('second')})
    results = {}
    barrier = threading.Barrier(2)

    def call(name, inspector):
        barrier.wait()
        results[name] = inspector.run('dead_tuples')

    threads = [threading.Thread(target=call, args=('first', first)),
               threading.Thread(target=call, args=('second', second))]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results['first'].rows == (('first',),)
    assert results['second'].rows == (('second',),)
    assert results['first'] is not results['second']
    with pytest.raises(TypeError):
        results['first'].rows[0][0] = 'mutated'
