import logging

from app.services.audit_service import AuditService
from tests.utils.fake_supabase import FakeSupabase


def test_record_decision_row_shape():
    db = FakeSupabase()
    row = AuditService(db).record_decision(
        submission_id=1, editor_id="e1", decision=8, stage_id=1, review_round_id=3, round=1, comments="go"
    )
    assert row["decision"] == 8
    assert row["review_round_id"] == 3
    assert row["decision_comments"] == "go"
    assert row["date_decided"]


def test_log_action_stringifies_values():
    db = FakeSupabase()
    AuditService(db).log_action(submission_id=1, user_id="u1", action="withdraw", old_value=1, new_value=4)
    row = db.rows("workflow_audit_log")[0]
    assert (row["old_value"], row["new_value"]) == ("1", "4")
    assert row["metadata"] == {}


def test_audit_failures_are_logged_not_raised(caplog):
    db = FakeSupabase()
    db.fail("editorial_decisions", RuntimeError("down"))
    db.fail("workflow_audit_log", RuntimeError("down"))
    svc = AuditService(db)
    with caplog.at_level(logging.WARNING, logger="journalflow.audit"):
        assert svc.record_decision(submission_id=1, editor_id=None, decision="withdrawn") is None
        assert svc.log_action(submission_id=1, user_id=None, action="x") is None
    assert caplog.text.count("(ignored)") == 2
