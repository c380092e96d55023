from app.models.workflow import SubmissionStatus, WorkflowStage
from app.services import schema_capabilities as caps_module
from app.services.schema_capabilities import (
    SchemaCapabilities,
    get_schema_capabilities,
    probe_schema,
    set_schema_capabilities,
)
from tests.utils.fake_supabase import FakeSupabase


def test_probe_full_schema_with_integer_status():
    db = FakeSupabase(
        {
            "submissions": [{"id": 1, "status": 1, "current_round": 1}],
            "publication_schedule": [],
        }
    )
    caps, complete = probe_schema(db)
    assert complete is True
    assert caps == SchemaCapabilities(
        has_current_round=True,
        has_publication_schedule=True,
        status_encoding="integer",
    )


def test_probe_detects_missing_column_table_and_legacy_status():
    db = FakeSupabase({"submissions": [{"id": 1, "status": "under_review"}]})
    db.drop_column("submissions", "current_round")
    db.drop_table("publication_schedule")

    caps, complete = probe_schema(db)
    assert complete is True
    assert caps.has_current_round is False
    assert caps.has_publication_schedule is False
    assert caps.status_encoding == "legacy"


def test_incomplete_probe_is_not_cached():
    db = FakeSupabase({"submissions": []})
    db.fail("publication_schedule", RuntimeError("network down"))
    set_schema_capabilities(None)

    caps = get_schema_capabilities(db)
    assert caps.has_publication_schedule is False
    assert caps_module._cached is None


def test_complete_probe_is_cached_once():
    db = FakeSupabase({"submissions": [], "publication_schedule": []})
    set_schema_capabilities(None)

    first = get_schema_capabilities(db)
    calls = len(db.calls)
    second = get_schema_capabilities(db)
    assert first is second
    assert len(db.calls) == calls


def test_encode_status():
    integer = SchemaCapabilities(False, False, "integer")
    legacy = SchemaCapabilities(False, False, "legacy")
    assert integer.encode_status(SubmissionStatus.DECLINED) == 4
    assert legacy.encode_status(SubmissionStatus.DECLINED) == "declined"
    assert legacy.encode_status(SubmissionStatus.QUEUED, WorkflowStage.EXTERNAL_REVIEW) == "under_review"
    assert legacy.encode_status(SubmissionStatus.QUEUED, 3, revisions_required=True) == "revision_required"
    assert integer.encode_status(SubmissionStatus.QUEUED, 3, revisions_required=True) == 1
