import pytest

from tests.utils.profiles import AUTHOR, EDITOR, OUTSIDER, REVIEWER
from tests.utils.api_client import API_PREFIX, auth_headers


def _seed_submission(fake_db, **fields):
    row = {"id": 1, "submitter_id": AUTHOR["id"], "title": "Paper", "stage_id": 1, "status": 1}
    row.update(fields)
    fake_db.rows("submissions").append(row)
    return row


@pytest.mark.asyncio
async def test_stages_catalog_is_public(client):
    res = await client.get(f"{API_PREFIX}/workflow/stages")
    assert res.status_code == 200
    assert res.json()["data"]["stages"][0] == {"id": 1, "name": "Submission"}


@pytest.mark.asyncio
async def test_missing_bearer_token_is_401(client):
    res = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": 1})
    assert res.status_code == 401
    assert res.json() == {"success": False, "error": "Authentication required"}


@pytest.mark.asyncio
async def test_create_round_then_existing(client, fake_db, as_user):
    _seed_submission(fake_db)
    as_user(EDITOR)

    first = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": 1})
    assert first.status_code == 201
    assert first.json()["existing"] is False

    second = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": "1"})
    assert second.status_code == 200
    body = second.json()
    assert body["existing"] is True
    assert body["reviewRound"]["id"] == first.json()["reviewRound"]["id"]


@pytest.mark.asyncio
async def test_create_round_requires_editor_role(client, fake_db, as_user):
    _seed_submission(fake_db)
    as_user(AUTHOR)
    res = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": 1})
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_create_round_validation_envelope(client, fake_db, as_user):
    as_user(EDITOR)
    res = await client.post(f"{API_PREFIX}/reviews/rounds", json={})
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "Invalid input"
    assert body["details"][0]["path"] == ["submissionId"]


@pytest.mark.asyncio
async def test_create_round_invalid_id_and_missing_submission(client, fake_db, as_user):
    as_user(EDITOR)
    bad = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": "not-an-id"})
    assert bad.status_code == 400
    missing = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": 42})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_create_round_declined_carries_error_code(client, fake_db, as_user):
    _seed_submission(fake_db, status=4)
    as_user(EDITOR)
    res = await client.post(f"{API_PREFIX}/reviews/rounds", json={"submissionId": 1})
    assert res.status_code == 400
    assert res.json()["errorCode"] == "SUBMISSION_DECLINED"


@pytest.mark.asyncio
async def test_list_rounds_permissions(client, fake_db, as_user):
    _seed_submission(fake_db, stage_id=3)
    fake_db.add("review_rounds", {"submission_id": 1, "round": 1, "status": 6})
    as_user(AUTHOR)
    ok = await client.get(f"{API_PREFIX}/reviews/rounds", params={"submissionId": 1})
    assert ok.status_code == 200
    assert ok.json()["data"][0]["round"] == 1

    as_user(OUTSIDER)
    denied = await client.get(f"{API_PREFIX}/reviews/rounds", params={"submissionId": 1})
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_assign_respond_submit_flow(client, fake_db, as_user):
    _seed_submission(fake_db)
    as_user(EDITOR)
    assigned = await client.post(
        f"{API_PREFIX}/reviews/assign", json={"submissionId": 1, "reviewerId": REVIEWER["id"]}
    )
    assert assigned.status_code == 201
    assignment_id = assigned.json()["assignment"]["id"]

    dup = await client.post(f"{API_PREFIX}/reviews/assign", json={"submissionId": 1, "reviewerId": REVIEWER["id"]})
    assert dup.status_code == 409

    as_user(REVIEWER)
    accepted = await client.patch(f"{API_PREFIX}/reviews/{assignment_id}/respond", json={"declined": False})
    assert accepted.status_code == 200
    assert accepted.json()["data"]["dateConfirmed"]

    again = await client.patch(f"{API_PREFIX}/reviews/{assignment_id}/respond", json={"declined": True})
    assert again.status_code == 409

    submitted = await client.post(
        f"{API_PREFIX}/reviews/{assignment_id}/submit",
        json={"recommendation": 1, "comments": "Solid", "commentsForEditor": "fine"},
    )
    assert submitted.status_code == 200
    assert submitted.json()["roundCompleted"] is True

    bad = await client.post(f"{API_PREFIX}/reviews/{assignment_id}/submit", json={"recommendation": 7})
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_respond_unknown_assignment_is_404(client, fake_db, as_user):
    as_user(REVIEWER)
    res = await client.patch(f"{API_PREFIX}/reviews/999/respond", json={"declined": True})
    assert res.status_code == 404


@pytest.mark.asyncio
async def test_submission_lifecycle(client, fake_db, as_user):
    as_user(AUTHOR)
    created = await client.post(f"{API_PREFIX}/submissions", json={"title": "New paper"})
    assert created.status_code == 201
    sid = created.json()["data"]["id"]

    got = await client.get(f"{API_PREFIX}/submissions/{sid}")
    assert got.json()["data"]["statusLabel"] == "Submission - Queued"

    withdrawn = await client.post(f"{API_PREFIX}/submissions/{sid}/withdraw", json={"reason": "oops"})
    assert withdrawn.status_code == 200
    assert withdrawn.json()["submission"]["status"] == 4

    again = await client.post(f"{API_PREFIX}/submissions/{sid}/withdraw")
    assert again.status_code == 400
    assert again.json()["errorCode"] == "SUBMISSION_DECLINED"


@pytest.mark.asyncio
async def test_withdraw_by_other_author_is_403(client, fake_db, as_user):
    _seed_submission(fake_db)
    as_user(OUTSIDER)
    res = await client.post(f"{API_PREFIX}/submissions/1/withdraw")
    assert res.status_code == 403


@pytest.mark.asyncio
async def test_decision_endpoints(client, fake_db, as_user):
    _seed_submission(fake_db)
    as_user(EDITOR)

    wrong_stage = await client.post(f"{API_PREFIX}/workflow/decision", json={"submissionId": 1, "decision": "request_revisions"})
    assert wrong_stage.status_code == 400
    assert wrong_stage.json()["errorCode"] == "INVALID_STAGE"

    to_review = await client.post(f"{API_PREFIX}/submissions/1/decision", json={"decision": 8})
    assert to_review.status_code == 200

    accepted = await client.post(f"{API_PREFIX}/workflow/decision", json={"submissionId": 1, "decision": "accept"})
    assert accepted.status_code == 200
    assert accepted.json()["submission"]["stageId"] == 4

    unknown = await client.post(f"{API_PREFIX}/workflow/decision", json={"submissionId": 1, "decision": "teleport"})
    assert unknown.json()["errorCode"] == "UNKNOWN_DECISION"


@pytest.mark.asyncio
async def test_publish_and_schedule(client, fake_db, as_user):
    _seed_submission(fake_db, stage_id=5)
    as_user(EDITOR)

    scheduled = await client.post(f"{API_PREFIX}/production/1/schedule", json={"scheduledDate": "2030-01-01T00:00:00Z"})
    assert scheduled.status_code == 200

    published = await client.post(f"{API_PREFIX}/production/1/publish")
    assert published.status_code == 200
    assert published.json()["publishedDate"]

    again = await client.post(f"{API_PREFIX}/production/1/publish")
    assert again.status_code == 409

    as_user(AUTHOR)
    forbidden = await client.post(f"{API_PREFIX}/production/1/publish")
    assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_expired_token_is_401(client, expired_token):
    res = await client.get(f"{API_PREFIX}/notifications", headers=auth_headers(expired_token))
    assert res.status_code == 401


@pytest.mark.asyncio
async def test_revision_cycle_and_decision_history(client, fake_db, as_user):
    _seed_submission(fake_db)
    as_user(EDITOR)
    assert (await client.post(f"{API_PREFIX}/workflow/decision", json={"submissionId": 1, "decision": 8})).status_code == 200
    revise = await client.post(f"{API_PREFIX}/submissions/1/decision", json={"decision": "request_revisions"})
    assert revise.json()["revisionsRequired"] is True

    as_user(OUTSIDER)
    forbidden = await client.post(f"{API_PREFIX}/submissions/1/resubmit")
    assert forbidden.status_code == 403

    as_user(AUTHOR)
    got = await client.get(f"{API_PREFIX}/submissions/1")
    assert got.json()["data"]["revisionsRequired"] is True
    resubmitted = await client.post(f"{API_PREFIX}/submissions/1/resubmit", json={"comments": "Updated"})
    assert resubmitted.status_code == 200
    assert resubmitted.json()["reviewRound"]["round"] == 2
    again = await client.post(f"{API_PREFIX}/submissions/1/resubmit")
    assert again.status_code == 400
    assert again.json()["errorCode"] == "REVISIONS_NOT_REQUESTED"

    history_denied = await client.get(f"{API_PREFIX}/workflow/decisions", params={"submissionId": 1})
    assert history_denied.status_code == 403

    as_user(EDITOR)
    history = await client.get(f"{API_PREFIX}/workflow/decisions", params={"submissionId": 1})
    assert history.status_code == 200
    assert [d["decision"] for d in history.json()["data"]] == ["resubmitted", 2, 8]
