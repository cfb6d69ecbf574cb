"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any

import pytest

os.environ.setdefault("SCHEMA_GUARD_LOG_LEVEL", "WARNING")
os.environ.setdefault("SCHEMA_GUARD_ENVIRONMENT", "test")

from schema_guard.config import Settings, get_settings  # noqa: E402
from schema_guard.logging_config import configure_logging  # noqa: E402
from schema_guard.metrics import reset_metrics  # noqa: E402


def get_test_settings(**overrides: Any) -> Settings:
    """Override settings for testing."""
    values: dict[str, Any] = {
        "environment": "test",
        "log_level": "WARNING",
        "metrics_enabled": True,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="session", autouse=True)
def _configure_logging() -> None:
    """Configure structlog once for the whole test session."""
    configure_logging()


@pytest.fixture(autouse=True)
def _fresh_globals() -> Generator[None, None, None]:
    """Give every test its own settings and metrics registry."""
    get_settings.cache_clear()
    reset_metrics()
    yield
    get_settings.cache_clear()
    reset_metrics()


@pytest.fixture
def settings() -> Settings:
    return get_test_settings()


@pytest.fixture
def users_schema() -> dict[str, Any]:
    """Users table with a regex, a bounded integer and a required enum."""
    return {
        "version": "1.0.0",
        "tables": [
            {
                "name": "Users",
                "primaryKey": "id",
                "fields": [
                    {"name": "id", "type": "string", "required": True},
                    {
                        "name": "email",
                        "type": "string",
                        "required": True,
                        "regex": r"^[^@\s]+@[^@\s]+\.[a-z]+$",
                    },
                    {"name": "age", "type": "integer", "min": 0, "max": 150},
                    {
                        "name": "status",
                        "type": "enum",
                        "required": True,
                        "enumValues": ["ACTIVE", "INACTIVE"],
                    },
                ],
            }
        ],
        "relations": [],
    }


@pytest.fixture
def blog_schema(users_schema: dict[str, Any]) -> dict[str, Any]:
    """Users plus Posts with ``Posts.authorId -> Users.id``."""
    schema = dict(users_schema)
    schema["tables"] = users_schema["tables"] + [
        {
            "name": "Posts",
            "primaryKey": "id",
            "fields": [
                {"name": "id", "type": "string"},
                {"name": "title", "type": "string", "required": True, "max": 120},
                {"name": "authorId", "type": "string"},
                {"name": "published", "type": "boolean", "default": False},
            ],
        }
    ]
    schema["relations"] = [
        {
            "id": "posts_author",
            "fromTable": "Posts",
            "fromField": "authorId",
            "toTable": "Users",
            "toField": "id",
            "cardinality": "n-1",
            "onDelete": "restrict",
        }
    ]
    return schema


@pytest.fixture
def blog_data() -> dict[str, list[dict[str, Any]]]:
    """Consistent data for the blog schema."""
    return {
        "Users": [
            {"id": "u1", "email": "ada@example.com", "age": 36, "status": "ACTIVE"},
            {"id": "u2", "email": "alan@example.com", "age": 41, "status": "INACTIVE"},
        ],
        "Posts": [
            {"id": "p1", "title": "Hello", "authorId": "u1", "published": True},
            {"id": "p2", "title": "Again", "authorId": "u1", "published": False},
        ],
    }


@pytest.fixture
def active_email_rule() -> dict[str, Any]:
    return {
        "id": "ACTIVE_EMAIL",
        "name": "Active users need an email",
        "severity": "warn",
        "scope": "table",
        "table": "Users",
        "when": [
            {"field": "status", "operator": "==", "value": "ACTIVE"},
            {"field": "email", "operator": "notExists"},
        ],
        "then": {
            "message": "Active users must have an email",
            "suggestion": "Ask the user for an email address",
            "quickFix": {"op": "setDefault", "field": "email", "value": "unknown@example.com"},
        },
    }
