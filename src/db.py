"""
MySQL helper. Uses PyMySQL; one lazily created connection per Database instance (no pool).
Builders bind values as parameters; Literal values (q(), now(), raw expressions) are inlined.
Failures are logged and answered with a falsy sentinel, except lost connections which raise.
"""
import json
import logging
from datetime import datetime

import pymysql
from pymysql.converters import escape_item
from pymysql.cursors import DictCursor

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3306
DEFAULT_CHARSET = "utf8mb4"
WAIT_TIMEOUT_SECONDS = 600

# Error fragments meaning the connection is unusable for the rest of the request
SERVER_DOWN_MARKERS = (
    "server has gone",
    "such file or directory",
    "Too many connections",
    "Broken pipe",
    "Packets out of order",
    "Packet sequence number wrong",
    "Lost connection to MySQL server",
    "Already closed",
)


class ConnectionLost(Exception):
    """The database connection is gone; the request cannot continue."""


class Literal(str):
    """SQL text inlined verbatim by the statement builders."""


def server_down(message):
    """Raise ConnectionLost if message looks like a dead connection, else return False."""
    message = str(message)
    if any(marker in message for marker in SERVER_DOWN_MARKERS):
        logger.critical("[DATABASE] Connection lost: %s", message)
        raise ConnectionLost(message)
    return False


def _raw(fragment):
    # PyMySQL formats the statement with %, so raw text must not carry bare %
    return str(fragment).replace("%", "%%")


def _bind(values):
    """Return (placeholders, args) for a sequence of values."""
    placeholders = []
    args = []
    for value in values:
        if isinstance(value, Literal):
            placeholders.append(_raw(value))
        else:
            placeholders.append("%s")
            args.append(value)
    return placeholders, args


def _on_duplicate(on_duplicate):
    return f" ON DUPLICATE KEY UPDATE {_raw(on_duplicate)}" if on_duplicate else ""


class Database:
    def __init__(self, database, params=None):
        database = dict(database)
        if params and not database.get("params"):
            database["params"] = params
        self.database = database
        self.connection = None
        self._last_error = None

    def connect(self):
        """Return the connection, creating it on first use. None if it cannot be made."""
        if self.connection is not None:
            return self.connection
        params = self.database.get("params") or {}
        try:
            self.connection = pymysql.connect(
                host=self.database.get("hostname"),
                port=int(self.database.get("port") or DEFAULT_PORT),
                user=self.database.get("username"),
                password=self.database.get("password") or "",
                database=self.database.get("database"),
                charset=params.get("charset") or DEFAULT_CHARSET,
                cursorclass=DictCursor,
                autocommit=True,
            )
            with self.connection.cursor() as cur:
                if params.get("sql_mode") is not None:
                    cur.execute("SET sql_mode = %s", (params["sql_mode"],))
                if params.get("time_zone") is not None:
                    cur.execute("SET time_zone = %s", (params["time_zone"],))
                cur.execute("SET SESSION wait_timeout = %s", (WAIT_TIMEOUT_SECONDS,))
        except pymysql.MySQLError as e:
            self._fail("connect", e)
        return self.connection

    def close(self):
        if self.connection is not None:
            try:
                self.connection.close()
            except pymysql.MySQLError as e:
                logger.warning("[DATABASE] close: %s", e)
            self.connection = None

    def error(self):
        """Message of the last failed operation, None if the last one succeeded."""
        return self._last_error

    def _fail(self, operation, exc, query=None, values=None):
        message = str(exc)
        self._last_error = message
        server_down(message)
        logger.warning("[DATABASE] %s: %s", operation, message)
        if query:
            logger.warning("[DATABASE] Query:  |%s|", query)
        if values is not None:
            logger.warning("[DATABASE] Values: |%s|", json.dumps(values, default=str))

    def _execute(self, operation, sql, args=None, values=None):
        """Run one statement; returns the cursor's (lastrowid, rows or None) or None on failure."""
        self._last_error = None
        conn = self.connect()
        if conn is None:
            return None
        try:
            with conn.cursor() as cur:
                cur.execute(sql, args)
                rows = list(cur.fetchall()) if cur.description is not None else None
                return cur.lastrowid, rows
        except (pymysql.MySQLError, TypeError, ValueError) as e:
            # escaping a bad parameter raises TypeError/ValueError before the query is sent
            self._fail(operation, e, self._render(sql, args), values)
        return None

    def _render(self, sql, args):
        if args is None or self.connection is None:
            return sql
        try:
            with self.connection.cursor() as cur:
                return cur.mogrify(sql, args)
        except (pymysql.MySQLError, TypeError, ValueError):
            return sql

    def _render_offline(self, operation, sql, args):
        """Render a statement without a connection, escaping with the configured charset."""
        self._last_error = None
        charset = (self.database.get("params") or {}).get("charset") or DEFAULT_CHARSET
        try:
            return sql % tuple(escape_item(arg, charset) for arg in args)
        except (TypeError, ValueError) as e:
            self._fail(operation, e, sql)
        return False

    def query(self, sql, return_id=False, args=None):
        """Execute raw SQL. Returns insert id, rows, True, or False on failure."""
        outcome = self._execute("query", sql, args)
        if outcome is None:
            return False
        lastrowid, rows = outcome
        if return_id:
            return lastrowid
        return rows if rows is not None else True

    def select(self, sql, first_row_only=False, field=None, args=None):
        """Execute SELECT and return list of dicts, or the first row / one of its fields."""
        outcome = self._execute("select", sql, args)
        rows = (outcome[1] or []) if outcome is not None else []
        if first_row_only:
            if not rows:
                return None
            if field:
                return rows[0].get(field)
            return rows[0]
        return rows

    def insert(self, table, values, return_id=False, on_duplicate=None):
        """INSERT one row from a column->value mapping. Returns new id, True, or False."""
        if not values:
            return False
        placeholders, args = _bind(values.values())
        sql = (
            f"INSERT INTO {_raw(table)} ({_raw(', '.join(values))}) "
            f"VALUES ({', '.join(placeholders)}){_on_duplicate(on_duplicate)};"
        )
        outcome = self._execute("insert", sql, args, values=values)
        if outcome is None:
            return False
        return outcome[0] if return_id else True

    def insert_multiple(self, table, columns, rows, on_duplicate=None, return_query_only=False):
        """One multi-row INSERT. With return_query_only, return the rendered statement instead."""
        if not rows:
            return False
        groups = []
        args = []
        for row in rows:
            placeholders, row_args = _bind(row)
            groups.append(f"({', '.join(placeholders)})")
            args.extend(row_args)
        sql = (
            f"INSERT INTO {_raw(table)} ({_raw(', '.join(columns))}) "
            f"VALUES {', '.join(groups)}{_on_duplicate(on_duplicate)};"
        )
        if return_query_only:
            return self._render_offline("insert_multiple", sql, args)
        return self._execute("insert_multiple", sql, args) is not None

    def update(self, table, values, where=None):
        if not values:
            return False
        placeholders, args = _bind(values.values())
        assignments = ", ".join(f"{_raw(column)} = {placeholder}" for column, placeholder in zip(values, placeholders))
        sql = f"UPDATE {_raw(table)} SET {assignments}" + (f" WHERE {_raw(where)}" if where else "") + ";"
        return self._execute("update", sql, args, values=values) is not None

    def delete(self, table, where=None):
        sql = f"DELETE FROM {_raw(table)}" + (f" WHERE {_raw(where)}" if where else "") + ";"
        return self._execute("delete", sql, ()) is not None

    def q(self, value, null_value=None):
        """Escape and single-quote a scalar for use inside a hand-written fragment."""
        if isinstance(value, bool):
            text = "1" if value else ""
        else:
            text = "" if value is None else str(value)
        if not text and null_value == "NULL":
            return Literal("NULL")
        conn = self.connect()
        if conn is None:
            return None
        return Literal(conn.escape(text))

    def now(self, fmt="%Y-%m-%d %H:%M:%S"):
        return self.q(datetime.now().strftime(fmt))

    def start_transaction(self):
        self._transaction("start_transaction", "begin")

    def commit_transaction(self):
        self._transaction("commit_transaction", "commit")

    def rollback_transaction(self):
        self._transaction("rollback_transaction", "rollback")

    def _transaction(self, operation, method):
        conn = self.connect()
        if conn is None:
            return
        try:
            getattr(conn, method)()
        except pymysql.MySQLError as e:
            self._fail(operation, e)

    @staticmethod
    def on_duplicate_values(columns, skip=0):
        """Build "col=VALUES(col), ..." for upserts, skipping a prefix count or a set of names."""
        columns = list(columns)
        if not isinstance(skip, int):
            excluded = set(skip)
            columns = [column for column in columns if column not in excluded]
            skip = 0
        return ", ".join(f"{column}=VALUES({column})" for column in columns[skip:])
