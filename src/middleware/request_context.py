"""
Per-request state on flask.g: start time, debug log, and the request's Database instances.
Connections opened during a request are closed when its app context tears down.
"""
import logging
import time

from flask import g

logger = logging.getLogger(__name__)


def start_request():
    g.started_at = time.perf_counter()
    g.debug_log = []
    g.databases = {}


def elapsed():
    """Seconds since the request started."""
    return time.perf_counter() - g.get("started_at", time.perf_counter())


def request_database(name, factory):
    """Return the request's Database for name, creating it with factory() on first use."""
    databases = g.setdefault("databases", {})
    if name not in databases:
        databases[name] = factory()
    return databases[name]


def close_databases(_exc=None):
    for database in g.pop("databases", {}).values():
        database.close()


def register(app):
    app.before_request(start_request)
    app.teardown_appcontext(close_databases)
