"""
Request/response facade. Reads one input value per call, hands out per-request Database
instances and writes the single JSON envelope that ends every request.
"""
import json
import logging
import sys
import traceback
from datetime import datetime

import psutil
from flask import Response, abort, current_app, g, request
from werkzeug.exceptions import HTTPException

import daily_log
from db import ConnectionLost, Database
from middleware import request_context

try:
    import resource
except ImportError:  # Windows
    resource = None

logger = logging.getLogger(__name__)

# Module loggers whose records reach the dated log and the debug block
APP_LOGGERS = ("api", "db", "middleware", "routes", "services")

DEFAULT_VERSION = "1.0.0"


class DatabaseNotFound(Exception):
    """No database is configured under the requested name."""


def current_api():
    """The Api bound to the running Flask app."""
    return current_app.extensions["api"]


def _memory():
    info = psutil.Process().memory_info()
    peak = getattr(info, "peak_wset", None)
    if peak is None and resource is not None:
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # bytes on macOS, kilobytes on Linux
        if sys.platform != "darwin":
            peak *= 1024
    return info.rss, max(info.rss, peak or 0)


class Api:
    def __init__(self, app=None, params=None):
        params = params or {}
        self.debug = params.get("env") == "test"
        self.version = params.get("version") or DEFAULT_VERSION
        self.databases = dict(params.get("databases") or {})
        self.log_path = params.get("log_path") or None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.extensions["api"] = self
        request_context.register(app)
        loggers = [logging.getLogger(name) for name in APP_LOGGERS] + [app.logger]
        if self.log_path:
            daily_log.install(daily_log.DailyFileHandler(self.log_path), loggers, app)
        if self.debug:
            daily_log.install(daily_log.RequestLogCollector(), loggers, app)
        app.register_error_handler(ConnectionLost, self._connection_lost)
        app.register_error_handler(DatabaseNotFound, self._database_not_found)
        app.register_error_handler(404, self._not_found)
        app.register_error_handler(Exception, self._unhandled)

    # INPUT/OUTPUT

    def input(self, key, default=None):
        """Value for key from the JSON body (or the query string when the body is empty)."""
        body = request.get_data(as_text=True)
        if not body:
            body = json.dumps(request.args.to_dict())
        try:
            data = json.loads(body)
        except ValueError:
            return default
        if isinstance(data, dict) and data.get(key) is not None:
            return data[key]
        return default

    def output(self, result, data, error=None):
        """Abort the request with the envelope; nothing after this call runs."""
        abort(self.respond(result, data, error))

    def respond(self, result, data, error=None, status=200):
        envelope = {
            "Result": result,
            "Data": data,
            "Error": error,
            "Datetime": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "Version": self.version,
        }
        if self.debug:
            memory, peak = _memory()
            envelope["Debug"] = {
                "Elapsed": round(request_context.elapsed(), 4),
                "Memory": memory,
                "Peak": peak,
                "Log": list(g.get("debug_log", [])),
            }
        response = Response(
            json.dumps(envelope, indent=4, ensure_ascii=False, default=str),
            status=status,
            content_type="application/json; charset=utf-8",
        )
        origin = request.headers.get("Origin")
        if origin:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
        else:
            response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    # DATABASE

    def db(self, name=None):
        if not name:
            name = next(iter(self.databases), None)
        if name not in self.databases:
            logger.critical("[DATABASE] Database not found: %s", name)
            raise DatabaseNotFound(name)
        return request_context.request_database(name, lambda: Database(self.databases[name]))

    # LOGGING

    def log(self, data):
        """Append a USER line to the dated log."""
        if not self.log_path:
            return
        message = data if isinstance(data, str) else json.dumps(data, default=str)
        logger.warning(message, extra={"log_type": daily_log.USER})

    # ERROR HANDLERS

    def _connection_lost(self, _e):
        return self.respond(False, None, "Database connection lost", status=500)

    def _database_not_found(self, _e):
        return self.respond(False, None, "Database not found", status=500)

    def _not_found(self, _e):
        return self.respond(False, None, "Not found", status=404)

    def _unhandled(self, e):
        if isinstance(e, HTTPException):
            return e
        frames = traceback.extract_tb(e.__traceback__)
        extra = {"source_file": frames[-1].filename, "source_line": frames[-1].lineno} if frames else {}
        logger.error("%s: %s", type(e).__name__, e, exc_info=e, extra=extra)
        return self.respond(False, None, "Internal server error", status=500)
