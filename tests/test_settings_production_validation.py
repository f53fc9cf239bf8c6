from __future__ import annotations

import pytest

from bookmark_backend.config import Settings


def test_settings_development_allows_placeholders():
    # Development should stay frictionless: sqlite and '*' CORS are allowed.
    s = Settings.model_validate({"environment": "development"})
    assert s.cors_origins_list() == ["*"]
    assert s.security_warnings()


def test_settings_production_requires_explicit_cors_and_real_database():
    with pytest.raises(Exception) as excinfo:
        Settings.model_validate({"environment": "production", "cors_allow_origins": "*"})

    msg = str(excinfo.value)
    assert "CORS_ALLOW_ORIGINS" in msg
    assert "DATABASE_URL" in msg


def test_settings_production_rejects_non_positive_reorder_limit():
    with pytest.raises(Exception) as excinfo:
        Settings.model_validate(
            {
                "environment": "production",
                "database_url": "postgresql+psycopg://u:p@localhost:5432/bookmarks",
                "cors_allow_origins": "https://example.com",
                "reorder_max_entries": 0,
            }
        )

    assert "REORDER_MAX_ENTRIES" in str(excinfo.value)


def test_settings_production_allows_safe_config():
    s = Settings.model_validate(
        {
            "environment": "production",
            "database_url": "postgresql+psycopg://u:p@localhost:5432/bookmarks",
            "cors_allow_origins": "https://example.com, https://admin.example.com",
        }
    )
    assert s.cors_origins_list() == ["https://example.com", "https://admin.example.com"]
    assert s.security_warnings() == []


def test_settings_accepts_cors_origins_alias():
    s = Settings.model_validate({"CORS_ORIGINS": "https://a.example.com"})
    assert s.cors_allow_origins == "https://a.example.com"


def test_launcher_runs_uvicorn_with_configured_address(monkeypatch: pytest.MonkeyPatch):
    import uvicorn

    from bookmark_backend import __main__ as launcher
    from bookmark_backend.config import settings

    calls: list[tuple[tuple[object, ...], dict[str, object]]] = []
    monkeypatch.setattr(uvicorn, "run", lambda *a, **kw: calls.append((a, kw)))
    monkeypatch.setattr(settings, "port", 9123)

    launcher.main()

    assert calls == [
        (
            ("bookmark_backend.main:app",),
            {"host": settings.host, "port": 9123, "log_level": settings.log_level.lower()},
        )
    ]
