from datetime import datetime, timezone

import pytest

from registration_api.submission_pipeline import SubmissionPipeline, iso_timestamp
from registration_api.utils.mongo_handler import DuplicateRegistrationError, StoreError
from registration_api.utils.objects import (
    ABUSE_REJECTED,
    DUPLICATE,
    STORE_ERROR,
    VALIDATION,
    CaptchaResult,
)


FIXED_NOW = datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.fixture
def pipeline(store, verifier):
    return SubmissionPipeline(store, verifier, clock=lambda: FIXED_NOW)


def test_first_submission_succeeds_and_resubmission_is_duplicate(pipeline, store, registration):
    first = pipeline.submit(dict(registration))
    second = pipeline.submit(dict(registration))

    assert first.ok
    assert first.id == str(store.documents[0]["_id"])
    assert not second.ok
    assert second.kind == DUPLICATE
    assert second.detail == "roll_number"
    assert len(store.documents) == 1


def test_same_roll_number_different_email_is_duplicate_on_roll_number(pipeline, registration):
    pipeline.submit(dict(registration))

    result = pipeline.submit(dict(registration, email="other@x.com"))

    assert result.kind == DUPLICATE
    assert result.detail == "roll_number"


def test_same_email_different_roll_number_is_duplicate_on_email(pipeline, registration):
    pipeline.submit(dict(registration))

    result = pipeline.submit(dict(registration, roll_number=8))

    assert result.kind == DUPLICATE
    assert result.detail == "email"


def test_roll_number_collision_wins_across_records(pipeline, registration):
    pipeline.submit(dict(registration, roll_number=1, email="a@x.com"))
    pipeline.submit(dict(registration, roll_number=2, email="b@x.com"))

    result = pipeline.submit(dict(registration, roll_number=2, email="a@x.com"))

    assert result.kind == DUPLICATE
    assert result.detail == "roll_number"


def test_invalid_record_stops_before_captcha_and_store(pipeline, store, verifier, registration):
    del registration["name"]

    result = pipeline.submit(registration)

    assert result.kind == VALIDATION
    assert result.detail == "Name is required and must be a string"
    assert verifier.tokens == []
    assert store.store_calls == 0


def test_rejected_captcha_never_reaches_store(store, rejecting_verifier, registration):
    pipeline = SubmissionPipeline(store, rejecting_verifier)

    result = pipeline.submit(registration)

    assert result.kind == ABUSE_REJECTED
    assert result.detail == "CAPTCHA verification failed"
    assert result.error_codes == ("invalid-input-response",)
    assert rejecting_verifier.tokens == ["valid"]
    assert store.store_calls == 0


def test_low_score_is_abuse_rejected(store, registration):
    class LowScoreVerifier:
        def check(self, token):
            return CaptchaResult(accepted=False, score=0.1, reason="CAPTCHA score too low, please try again")

    result = SubmissionPipeline(store, LowScoreVerifier()).submit(registration)

    assert result.kind == ABUSE_REJECTED
    assert store.store_calls == 0


def test_stored_document_has_no_token_and_carries_timestamps(pipeline, store, registration):
    registration["adminKey"] = "should-not-be-stored"

    pipeline.submit(registration)

    stored = store.documents[0]
    assert "captchaToken" not in stored
    assert "adminKey" not in stored
    assert stored["createdAt"] == FIXED_NOW
    assert stored["submittedAt"] == "2024-05-01T10:00:00.123Z"
    assert stored["name"] == "Ann"


def test_caller_record_is_not_modified(pipeline, registration):
    snapshot = dict(registration)

    pipeline.submit(registration)

    assert registration == snapshot


def test_store_failure_on_lookup_is_store_error(pipeline, store, registration):
    store.find_error = StoreError("server selection timeout")

    result = pipeline.submit(registration)

    assert result.kind == STORE_ERROR
    assert result.detail == "server selection timeout"
    assert store.insert_calls == 0


def test_store_failure_on_insert_is_store_error(pipeline, store, registration):
    store.insert_error = StoreError("write concern error")

    result = pipeline.submit(registration)

    assert not result.ok
    assert result.kind == STORE_ERROR
    assert result.detail == "write concern error"


def test_unique_index_conflict_is_reported_as_duplicate(pipeline, store, registration):
    store.insert_error = DuplicateRegistrationError("email")

    result = pipeline.submit(registration)

    assert result.kind == DUPLICATE
    assert result.detail == "email"


def test_iso_timestamp_converts_to_utc():
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    assert iso_timestamp(moment) == "2024-01-02T03:04:05.000Z"
