"""
Database health: one SELECT 1 per configured database.
"""
import logging

logger = logging.getLogger(__name__)


def check_databases(api):
    """Return {name: bool} telling which configured databases answer."""
    status = {}
    for name in api.databases:
        ok = api.db(name).select("SELECT 1 AS ok", True, "ok")
        status[name] = ok == 1
        if not status[name]:
            logger.warning("health: database %s did not answer", name)
    return status
