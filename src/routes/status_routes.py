"""
Status API: service descriptor and database health.
"""
from flask import Blueprint

from api import current_api
from services import health_service

blueprint = Blueprint("status", __name__)


@blueprint.get("/")
def root():
    """Root: simple envelope so GET / does not 404."""
    api = current_api()
    api.output(True, {"service": "api-helper", "health": "/health", "databases": list(api.databases)})


@blueprint.get("/health")
def health():
    api = current_api()
    status = health_service.check_databases(api)
    api.output(all(status.values()), status, None if all(status.values()) else "Database unavailable")
