"""
Dated flat-file log and per-request debug log.

File lines look like HH:MM:SS|TYPE|file|line|message, one file per day at <log_path>/YYYY-MM-DD.log.
Only WARNING and above plus USER entries reach the file.
"""
import logging
import os
from datetime import datetime

from flask import current_app, g, has_app_context

USER = "USER"
NEWLINE_MARKER = "<%n>"


def _one_line(message):
    return message.strip().replace("\r\n", NEWLINE_MARKER).replace("\n", NEWLINE_MARKER).replace("\r", NEWLINE_MARKER)


class PipeFormatter(logging.Formatter):
    """Formats records as HH:MM:SS|TYPE|file|line|message."""

    def format(self, record):
        log_type = getattr(record, "log_type", None) or record.levelname
        source_file = getattr(record, "source_file", record.pathname)
        source_line = getattr(record, "source_line", record.lineno)
        if log_type == USER:
            source_file, source_line = "", ""
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        return f"{when}|{log_type}|{source_file}|{source_line}|{_one_line(record.getMessage())}"


class DailyFileHandler(logging.Handler):
    """Appends formatted records to today's file under log_path."""

    def __init__(self, log_path):
        super().__init__(level=logging.DEBUG)
        self.log_path = log_path
        os.makedirs(log_path, exist_ok=True)
        self.setFormatter(PipeFormatter())
        self.addFilter(self._keep)

    @staticmethod
    def _keep(record):
        return record.levelno >= logging.WARNING or getattr(record, "log_type", None) == USER

    def path_for(self, when=None):
        when = when or datetime.now()
        return os.path.join(self.log_path, when.strftime("%Y-%m-%d") + ".log")

    def emit(self, record):
        try:
            line = self.format(record)
            with open(self.path_for(datetime.fromtimestamp(record.created)), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


class RequestLogCollector(logging.Handler):
    """Keeps the records logged while serving a request on flask.g for the debug envelope."""

    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.setFormatter(logging.Formatter("%(asctime)s|%(levelname)s|%(message)s"))

    def emit(self, record):
        if not has_app_context():
            return
        try:
            g.setdefault("debug_log", []).append(self.format(record))
        except Exception:
            self.handleError(record)


class AppFilter(logging.Filter):
    """Passes only records logged inside the given Flask app's context."""

    def __init__(self, app):
        super().__init__()
        self.app = app

    def filter(self, record):
        return has_app_context() and current_app._get_current_object() is self.app


def install(handler, loggers, app=None):
    """Attach handler to each logger, replacing an earlier handler of the same type bound to the same app."""
    if app is not None:
        handler.app = app
        handler.addFilter(AppFilter(app))
    for logger in loggers:
        for existing in list(logger.handlers):
            if type(existing) is type(handler) and getattr(existing, "app", None) is app:
                logger.removeHandler(existing)
        logger.addHandler(handler)
    return handler
