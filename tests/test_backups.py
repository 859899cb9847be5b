import json
from datetime import datetime, timedelta

import pytest

from starjar.exceptions import ImportRejectedError
from starjar.service import StarJar

START = datetime(2024, 5, 1, 8, 30)


def populated_app() -> StarJar:
    app = StarJar(env_api_key=None)
    ava = app.add_child("Ava")
    ben = app.add_child("Ben")
    app.earn(ava.id, "Washed dishes", 40, at=START)
    app.earn(ben.id, "Good manners", 15, "behavior", at=START)
    app.redeem(ava.id, "Screen time", 5, at=START + timedelta(hours=2))
    app.invest(ava.id, "cbank", 20, 6, at=START + timedelta(days=1))
    return app


def state(app: StarJar) -> tuple:
    store = app.store
    return store.get_children(), store.get_logs(), store.get_investments()


def test_export_document_shape() -> None:
    app = populated_app()

    document = json.loads(app.export_json(at=START))

    assert set(document) == {"children", "logs", "investments", "version", "exportedAt"}
    assert document["exportedAt"] == 1714552200000
    assert document["children"][0]["totalPoints"] == 15
    assert {"id", "childId", "bankId", "principal", "rate", "status"} <= set(document["investments"][0])


def test_export_then_import_into_empty_store_reproduces_state() -> None:
    source = populated_app()
    exported = source.export_json()

    target = StarJar(env_api_key=None)
    counts = target.import_json(exported)

    assert counts == {"children": 2, "logs": 4, "investments": 1}
    assert state(target) == state(source)


def test_import_missing_logs_is_rejected_without_changes() -> None:
    app = populated_app()
    before = state(app)
    document = json.loads(app.export_json())
    del document["logs"]

    with pytest.raises(ImportRejectedError):
        app.backups.import_document(document)

    assert state(app) == before
    assert app.logger.events("import_rejected")


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "[]",
        json.dumps({"children": [], "logs": {}, "investments": []}),
        json.dumps({"children": [{"name": "missing id"}], "logs": [], "investments": []}),
    ],
)
def test_malformed_imports_are_rejected(payload: str) -> None:
    app = populated_app()
    before = state(app)

    with pytest.raises(ImportRejectedError):
        app.import_json(payload)

    assert state(app) == before


def test_import_replaces_existing_collections() -> None:
    app = populated_app()

    app.import_json(json.dumps({"children": [], "logs": [], "investments": []}))

    assert state(app) == ([], [], [])
