from pathlib import Path

from liveauction.config import load_settings, parse_registration_tokens


def test_defaults_without_environment():
    settings = load_settings({})

    assert settings.db_path == "liveauction.sqlite"
    assert settings.media_dir == Path("media")
    assert settings.refetch_debounce == 0.3
    assert settings.cors_origins == ("*",)
    assert dict(settings.registration_tokens) == {}


def test_environment_overrides():
    settings = load_settings(
        {
            "LIVEAUCTION_DB_PATH": "/tmp/a.sqlite",
            "LIVEAUCTION_MEDIA_BASE_URL": "/files/",
            "LIVEAUCTION_REGISTRATION_TOKENS": "abc=t1, def=t2",
            "LIVEAUCTION_REFETCH_DEBOUNCE": "0.5",
            "LIVEAUCTION_CORS_ORIGINS": "http://a.test, http://b.test",
        }
    )

    assert settings.db_path == "/tmp/a.sqlite"
    assert settings.media_base_url == "/files"
    assert dict(settings.registration_tokens) == {"abc": "t1", "def": "t2"}
    assert settings.refetch_debounce == 0.5
    assert settings.cors_origins == ("http://a.test", "http://b.test")


def test_invalid_numbers_fall_back_with_warning(caplog):
    with caplog.at_level("WARNING"):
        settings = load_settings({"LIVEAUCTION_BUSY_TIMEOUT": "soon", "LIVEAUCTION_HEARTBEAT_INTERVAL": "0"})

    assert settings.busy_timeout == 5.0
    assert settings.heartbeat_interval == 1.0
    assert "LIVEAUCTION_BUSY_TIMEOUT" in caplog.text


def test_parse_registration_tokens_skips_malformed_entries():
    assert parse_registration_tokens("good=t1,bad,=t2,empty=") == {"good": "t1"}
    assert parse_registration_tokens(None) == {}


def test_form_schema_dir_is_optional():
    assert load_settings({}).form_schema_dir is None
    settings = load_settings({"LIVEAUCTION_FORM_SCHEMA_DIR": "/srv/forms"})
    assert settings.form_schema_dir == Path("/srv/forms")
