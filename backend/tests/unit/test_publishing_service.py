from datetime import datetime, timezone

import pytest
from fastapi import HTTPException

from app.core.middleware import WorkflowError
from app.services.publishing_service import PublishingService
from app.services.schema_capabilities import SchemaCapabilities, set_schema_capabilities
from tests.utils.fake_supabase import FakeSupabase


def _db(status=1, stage_id=5) -> FakeSupabase:
    return FakeSupabase(
        {
            "submissions": [
                {"id": 1, "submitter_id": "author-1", "title": "Paper", "stage_id": stage_id, "status": status}
            ],
            "publications": [{"id": 1, "submission_id": 1, "version": 1, "status": 1, "is_current": True}],
        }
    )


def test_publish_upserts_publication_without_schedule_table():
    db = _db()
    out = PublishingService(db).publish(1, editor_id="editor-1")

    assert out["publishedDate"]
    assert db.rows("submissions")[0]["status"] == 3
    pubs = db.rows("publications")
    assert len(pubs) == 1
    assert pubs[0]["date_published"] == out["publishedDate"]
    assert pubs[0]["status"] == 3
    assert db.rows("notifications")[0]["type"] == "published"


def test_publish_uses_schedule_table_when_present():
    set_schema_capabilities(SchemaCapabilities(False, True, "integer"))
    db = _db()
    out = PublishingService(db).publish(1, editor_id="editor-1")
    assert db.rows("publication_schedule")[0]["published_date"] == out["publishedDate"]


def test_publish_writes_legacy_status_string():
    set_schema_capabilities(SchemaCapabilities(False, False, "legacy"))
    db = _db(status="production")
    PublishingService(db).publish(1, editor_id="editor-1")
    assert db.rows("submissions")[0]["status"] == "published"


def test_publish_twice_is_conflict():
    db = _db()
    svc = PublishingService(db)
    svc.publish(1, editor_id="editor-1")
    with pytest.raises(WorkflowError) as exc:
        svc.publish(1, editor_id="editor-1")
    assert exc.value.status_code == 409


def test_publish_declined_is_400():
    with pytest.raises(WorkflowError) as exc:
        PublishingService(_db(status=4)).publish(1, editor_id="editor-1")
    assert exc.value.status_code == 400
    assert exc.value.error_code == "SUBMISSION_DECLINED"


def test_publish_missing_submission_is_404():
    with pytest.raises(HTTPException) as exc:
        PublishingService(FakeSupabase()).publish(1, editor_id="editor-1")
    assert exc.value.status_code == 404


def test_schedule_requires_production_stage():
    when = datetime(2030, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(WorkflowError) as exc:
        PublishingService(_db(stage_id=4)).schedule(1, editor_id="editor-1", scheduled_date=when)
    assert exc.value.error_code == "INVALID_STAGE"

    db = _db()
    out = PublishingService(db).schedule(1, editor_id="editor-1", scheduled_date=when)
    assert out["scheduledDate"] == when.isoformat()
    assert db.rows("submissions")[0]["status"] == 5

    with pytest.raises(HTTPException) as exc:
        PublishingService(db).schedule(1, editor_id="editor-1", scheduled_date=when)
    assert exc.value.status_code == 400


def test_scheduled_submission_can_be_published():
    db = _db(status=5)
    PublishingService(db).publish(1, editor_id="editor-1")
    assert db.rows("submissions")[0]["status"] == 3
