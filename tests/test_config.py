from pathlib import Path

from assocportal.config import Settings


def test_cors_origins_include_frontend_url():
    settings = Settings(
        cors_origins=["http://localhost:3000/", "https://admin.example.com"],
        frontend_url="https://app.example.com/",
    )

    assert settings.cors_allow_origins == [
        "http://localhost:3000",
        "https://admin.example.com",
        "https://app.example.com",
    ]


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("LEAD_RATE_LIMIT", "12")
    monkeypatch.setenv("EMAIL_BACKEND", "sendgrid")

    settings = Settings()

    assert settings.lead_rate_limit == 12
    assert settings.email_backend == "sendgrid"
    assert str(settings.uploads_root_path) == settings.uploads_dir


def test_email_stub_output_outside_public_uploads():
    settings = Settings()

    email_dir = Path(settings.email_output_dir).resolve()
    uploads_dir = settings.uploads_root_path.resolve()

    assert email_dir != uploads_dir
    assert uploads_dir not in email_dir.parents
