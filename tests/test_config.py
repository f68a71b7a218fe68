"""
Tests for environment-driven database configuration.
"""
import json

import pytest

import config


def test_databases_from_json(monkeypatch):
    databases = {"main": {"hostname": "h", "username": "u", "password": "p", "database": "d"}}
    monkeypatch.setenv("DATABASES", json.dumps(databases))
    assert config.load_databases() == databases


def test_databases_json_must_be_object(monkeypatch):
    monkeypatch.setenv("DATABASES", "[1]")
    with pytest.raises(ValueError):
        config.load_databases()


def test_single_database_from_mysql_env(monkeypatch):
    monkeypatch.delenv("DATABASES", raising=False)
    monkeypatch.setenv("MYSQL_HOST", "db.internal")
    monkeypatch.setenv("MYSQL_PORT", "3307")
    monkeypatch.setenv("MYSQL_DATABASE", "shop")
    monkeypatch.setenv("MYSQL_TIME_ZONE", "+00:00")
    monkeypatch.delenv("MYSQL_CHARSET", raising=False)
    monkeypatch.delenv("MYSQL_SQL_MODE", raising=False)
    default = config.load_databases()["default"]
    assert default["hostname"] == "db.internal"
    assert default["port"] == 3307
    assert default["database"] == "shop"
    assert default["params"] == {"time_zone": "+00:00"}


def test_api_params_shape():
    params = config.api_params()
    assert set(params) == {"env", "version", "databases", "log_path"}
