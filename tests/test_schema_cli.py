import json


def _status(runner):
    result = runner.invoke(args=["schema", "status", "--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def test_status_on_migrated_database(runner):
    payload = _status(runner)

    assert payload == {
        "current_version": 2,
        "latest_version": 2,
        "pending": False,
        "pending_versions": [],
    }


def test_status_text_reports_up_to_date(runner):
    result = runner.invoke(args=["schema", "status"])

    assert "Current schema version: 2" in result.output
    assert "Schema is up to date." in result.output


def test_rollback_then_migrate(runner):
    rolled_back = runner.invoke(args=["schema", "rollback", "--yes"])

    assert rolled_back.exit_code == 0, rolled_back.output
    assert "Schema rolled_back: version 2 -> 1" in rolled_back.output
    assert _status(runner)["pending_versions"] == [2]

    migrated = runner.invoke(args=["schema", "migrate", "--json"])

    assert migrated.exit_code == 0, migrated.output
    report = json.loads(migrated.output)
    assert report["status"] == "migrated"
    assert [step["version"] for step in report["migrations"]] == [2]
    assert _status(runner)["pending"] is False


def test_rollback_requires_confirmation(runner):
    result = runner.invoke(args=["schema", "rollback"], input="n\n")

    assert result.exit_code == 1
    assert _status(runner)["current_version"] == 2


def test_migrate_when_up_to_date(runner):
    result = runner.invoke(args=["schema", "migrate"])

    assert result.exit_code == 0
    assert "Schema up_to_date: version 2 -> 2" in result.output
