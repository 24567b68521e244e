"""
Fixtures for pytest.

``FakeConnection`` stands in for a psycopg2 connection: each execute()
looks the statement up in a response table keyed by catalog query name.
"""
import logging

import pytest

from pginspect.catalog import load_catalog
from pginspect.config import Settings, get_settings
from pginspect.inspector import Inspector


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.description = None
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append((sql, params))
        response = self.conn.respond(sql, params)
        if isinstance(response, Exception):
            raise response
        columns, rows = response
        self.description = [(name,) for name in columns]
        self._rows = [tuple(row) for row in rows]

    def fetchall(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, catalog, responses=None):
        self.catalog = catalog
        self.responses = responses or {}
        self.executed = []
        self.closed = 0
        self.autocommit = False

    def respond(self, sql, params):
        for spec in self.catalog:
            if spec.sql == sql:
                response = self.responses.get(spec.name)
                if response is None:
                    return spec.columns, []
                if callable(response):
                    return response(params)
                return response
        raise AssertionError("statement not in catalog")

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = 1


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('HOST', 'PORT', 'DATABASE', 'USER', 'PASSWORD', 'LOG_LEVEL',
                 'STATEMENT_TIMEOUT_MS', 'CONNECT_TIMEOUT', 'APPLICATION_NAME'):
        monkeypatch.delenv(f'PGINSPECT_{name}', raising=False)
    get_settings.cache_clear()
    root_logger = logging.getLogger()
    handlers, level = root_logger.handlers[:], root_logger.level
    yield
    get_settings.cache_clear()
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    for h in handlers:
        root_logger.addHandler(h)
    root_logger.setLevel(level)


@pytest.fixture
def catalog():
    return load_catalog()


@pytest.fixture
def settings():
    return Settings(_env_file=None, PASSWORD='secret')


@pytest.fixture
def make_inspector(catalog, settings):
    """Build an inspector whose connect() hands out a FakeConnection."""
    def factory(responses=None, connect_error=None):
        connections = []

        def connect(**kwargs):
            if connect_error is not None:
                raise connect_error
            conn = FakeConnection(catalog, responses)
            conn.kwargs = kwargs
            connections.append(conn)
            return conn

        inspector = Inspector(settings, catalog, connect=connect)
        inspector.connections = connections
        return inspector

    return factory


@pytest.fixture
def cli_responses(monkeypatch, catalog):
    """Route the command line's inspector to a FakeConnection.

    Returns the response table; tests fill it before calling ``main``.
    Put an exception under the ``'connect'`` key to fail the connection.
    """
    import pginspect.cli

    responses = {}

    def connect(**kwargs):
        if 'connect' in responses:
            raise responses['connect']
        return FakeConnection(catalog, responses)

    def inspector_factory(settings, catalog_):
        return Inspector(settings, catalog_, connect=connect)

    monkeypatch.setattr(pginspect.cli, 'Inspector', inspector_factory)
    return responses
