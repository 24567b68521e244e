"""Read-only PostgreSQL internals inspector."""
from pginspect.catalog import Catalog, QuerySpec, load_catalog
from pginspect.config import Settings, get_settings
from pginspect.inspector import Inspector, QueryResult
from pginspect.waitgraph import LockEdge, LockRow, WaitGraph

__version__ = "0.1.0"

__all__ = [
    'Catalog',
    'QuerySpec',
    'load_catalog',
    'Settings',
    'get_settings',
    'Inspector',
    'QueryResult',
    'LockEdge',
    'LockRow',
    'WaitGraph',
]
