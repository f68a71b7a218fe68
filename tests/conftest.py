"""
Pytest fixtures. PyMySQL is replaced by an in-memory fake connection that records
rendered statements and replays queued results.
"""
import pymysql
import pytest
from pymysql.converters import escape_item


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self.lastrowid = 0
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def mogrify(self, query, args=None):
        if args is None:
            return query
        return query % tuple(self.connection.escape(arg) for arg in args)

    def execute(self, query, args=None):
        statement = self.mogrify(query, args)
        self.connection.executed.append(statement)
        if statement.startswith("SET "):
            return 0
        outcome = self.connection.results.pop(0) if self.connection.results else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            self.description = (("column",),)
            self._rows = outcome
        if statement.startswith("INSERT"):
            self.connection.lastrowid += 1
            self.lastrowid = self.connection.lastrowid
        return len(self._rows)

    def fetchall(self):
        return self._rows


class FakeConnection:
    def __init__(self):
        self.executed = []
        self.results = []
        self.transactions = []
        self.connect_calls = []
        self.connect_error = None
        self.lastrowid = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def escape(self, value):
        return escape_item(value, "utf8mb4")

    def begin(self):
        self.transactions.append("begin")

    def commit(self):
        self.transactions.append("commit")

    def rollback(self):
        self.transactions.append("rollback")

    def close(self):
        self.closed = True

    @property
    def statements(self):
        """Executed statements other than session setup."""
        return [s for s in self.executed if not s.startswith("SET ")]


DATABASE = {"hostname": "db.local", "username": "app", "password": "secret", "database": "app"}


@pytest.fixture
def mysql(monkeypatch):
    """Route pymysql.connect to a single FakeConnection."""
    conn = FakeConnection()

    def fake_connect(**kwargs):
        conn.connect_calls.append(kwargs)
        if conn.connect_error is not None:
            raise conn.connect_error
        return conn

    monkeypatch.setattr(pymysql, "connect", fake_connect)
    return conn


@pytest.fixture
def database(mysql):
    from db import Database

    return Database(DATABASE)


@pytest.fixture
def log_dir(tmp_path):
    return tmp_path / "logs"


@pytest.fixture
def app(mysql, log_dir):
    from index import create_app

    return create_app({
        "env": "test",
        "version": "2.0.0",
        "databases": {"main": dict(DATABASE), "stats": dict(DATABASE, database="stats")},
        "log_path": str(log_dir),
    })


@pytest.fixture
def client(app):
    return app.test_client()
