"""
Configuration from environment. No hardcoded secrets.
Copy .env.example to .env at project root. Databases come from DATABASES (JSON mapping of
name -> {hostname, port, username, password, database, params}) or, if unset, from MYSQL_*.
"""
import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (parent of src)
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

PORT = int(os.environ.get("PORT", "3000"))

# "test" turns on the Debug block of the response envelope
API_ENV = os.environ.get("API_ENV", "production")
API_VERSION = os.environ.get("API_VERSION", "1.0.0")

# "development" runs the Flask dev server with its debugger; independent of API_ENV
SERVER_ENV = os.environ.get("SERVER_ENV", "production")

# Directory for the dated log files; unset disables file logging
LOG_PATH = os.environ.get("LOG_PATH") or None


def _mysql_from_env():
    params = {
        "charset": os.environ.get("MYSQL_CHARSET"),
        "sql_mode": os.environ.get("MYSQL_SQL_MODE"),
        "time_zone": os.environ.get("MYSQL_TIME_ZONE"),
    }
    return {
        "hostname": os.environ.get("MYSQL_HOST", "localhost"),
        "port": int(os.environ.get("MYSQL_PORT", "3306")),
        "username": os.environ.get("MYSQL_USER", "root"),
        "password": os.environ.get("MYSQL_PASSWORD", ""),
        "database": os.environ.get("MYSQL_DATABASE", "api"),
        "params": {k: v for k, v in params.items() if v is not None},
    }


def load_databases():
    raw = os.environ.get("DATABASES")
    if raw:
        databases = json.loads(raw)
        if not isinstance(databases, dict):
            raise ValueError("DATABASES must be a JSON object of name -> settings")
        return databases
    return {"default": _mysql_from_env()}


DATABASES = load_databases()


def api_params():
    """Parameters for Api(app, params)."""
    return {
        "env": API_ENV,
        "version": API_VERSION,
        "databases": DATABASES,
        "log_path": LOG_PATH,
    }
