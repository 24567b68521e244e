"""
Error taxonomy
==============

Every failure surfaced by the inspector derives from ``InspectorError``
and carries the catalog query name, the server message and the process
exit code the command line uses for it.

The names below mirror the failure categories. Import the
module (``from pginspect import errors``) rather than the names so they do
not shadow the builtins of the same name.
"""

EXIT_OK = 0
EXIT_CONNECTION = 1
EXIT_PERMISSION = 2
EXIT_QUERY = 3
EXIT_GRAPH = 4


class InspectorError(Exception):
    exit_code = EXIT_QUERY

    def __init__(self, message, query_name=None):
        super().__init__(message)
        self.message = message
        self.query_name = query_name

    def __str__(self):
        if self.query_name:
            return f"[{self.query_name}] {self.message}"
        return self.message


class ConnectionError(InspectorError):
    """Server unreachable, authentication failed or connection lost."""
    exit_code = EXIT_CONNECTION


class PermissionError(InspectorError):
    """Connected role lacks privilege on a catalog view or extension."""
    exit_code = EXIT_PERMISSION


class QueryError(InspectorError):
    """Referenced relation/index/extension absent, or the query failed."""
    exit_code = EXIT_QUERY


class GraphError(InspectorError):
    """Malformed lock snapshot."""
    exit_code = EXIT_GRAPH
