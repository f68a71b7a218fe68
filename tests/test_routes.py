"""
Tests for the built-in status endpoints.
"""
from pymysql.err import ProgrammingError


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    envelope = response.get_json()
    assert envelope["Result"] is True
    assert envelope["Data"]["databases"] == ["main", "stats"]


def test_health_all_up(client, mysql):
    mysql.results = [[{"ok": 1}], [{"ok": 1}]]
    envelope = client.get("/health").get_json()
    assert envelope["Result"] is True
    assert envelope["Data"] == {"main": True, "stats": True}
    assert envelope["Error"] is None


def test_health_one_down(client, mysql):
    mysql.results = [[{"ok": 1}], ProgrammingError(1049, "Unknown database 'stats'")]
    envelope = client.get("/health").get_json()
    assert envelope["Result"] is False
    assert envelope["Data"] == {"main": True, "stats": False}
    assert envelope["Error"] == "Database unavailable"
