import json

import pytest

from config import TestingConfig
from config.secrets import SecretsConfigError, load_secrets
from docrate import create_app, get_secrets


def test_nothing_configured_yields_empty_secrets():
    secrets = load_secrets(env={})

    assert secrets.source is None
    assert secrets.get("api_key") is None
    assert secrets.environment == "production"


def test_environment_variable_names_the_file(tmp_path):
    path = tmp_path / "secrets.json"
    path.write_text(json.dumps({"environment": "staging", "api_key": "k"}), encoding="utf-8")

    secrets = load_secrets(env={"DOCRATE_SECRETS_FILE": str(path)})

    assert secrets.is_staging
    assert secrets.has("api_key")
    assert secrets.source == str(path)


def test_yaml_secrets_are_read_only(tmp_path):
    path = tmp_path / "secrets.yaml"
    path.write_text("environment: production\ndb_password: hunter2\n", encoding="utf-8")

    secrets = load_secrets(path)

    assert secrets.get("db_password") == "hunter2"
    with pytest.raises(TypeError):
        secrets.values["db_password"] = "changed"


def test_missing_configured_file_is_an_error(tmp_path):
    with pytest.raises(SecretsConfigError):
        load_secrets(tmp_path / "absent.json")


@pytest.mark.parametrize(
    ("name", "contents"),
    [("bad.json", "{not json"), ("list.yaml", "- a\n- b\n")],
)
def test_malformed_file_is_an_error(tmp_path, name, contents):
    path = tmp_path / name
    path.write_text(contents, encoding="utf-8")

    with pytest.raises(SecretsConfigError):
        load_secrets(path)


def test_app_loads_secrets_once_at_startup(tmp_path):
    path = tmp_path / "secrets.json"
    path.write_text(json.dumps({"environment": "staging"}), encoding="utf-8")

    app = create_app(
        TestingConfig,
        {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'secrets.db'}", "DOCRATE_SECRETS_FILE": str(path)},
    )

    assert get_secrets(app).is_staging
    assert "environment" not in app.config
    assert app.config["SECRET_KEY"] is None


def test_app_refuses_to_start_with_missing_secrets_file(tmp_path):
    with pytest.raises(SecretsConfigError):
        create_app(
            TestingConfig,
            {
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'secrets.db'}",
                "DOCRATE_SECRETS_FILE": str(tmp_path / "absent.yaml"),
            },
        )
