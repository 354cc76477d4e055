from placeintel.config import Settings


def test_settings_read_environment_case_insensitively(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "7")
    monkeypatch.setenv("geoapify_api_key", "geo-key")

    settings = Settings(_env_file=None)

    assert settings.rate_limit_per_minute == 7
    assert settings.geoapify_api_key == "geo-key"


def test_settings_tolerate_unrelated_dotenv_entries(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("POSTGRES_PASSWORD=unused\nIDEMPOTENCY_WINDOW_SECONDS=30\n")

    settings = Settings(_env_file=str(env_file))

    assert settings.idempotency_window_seconds == 30
