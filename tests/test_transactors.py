"""Submission behaviour through both channels, and the fallback between them.

Tests taking ``make_transactor`` run once against the HTTP channel and once
against the direct channel with identical expectations.
"""

import httpx
import pytest
from sqlmodel import Session

from assignment_engine.config import Settings
from assignment_engine.errors import (
    AuthenticationFailure,
    ChannelUnavailable,
    DuplicateSubmission,
    NotFound,
    PermissionDenied,
)
from assignment_engine.identity import REVIEWER, Identity
from assignment_engine.transactors import (
    AuthoritativeTransactor,
    DirectTransactor,
    FallbackTransactor,
)
from conftest import stored_score, stored_submissions, test_engine, token

ALL_CORRECT = [{"kind": "mcq", "choices": [1]}, {"kind": "mcq", "choices": [0, 2]}]


class TestEitherChannel:
    def test_auto_approved_submit(self, make_transactor, mcq_quiz_id):
        outcome = make_transactor("learner-1").submit(mcq_quiz_id, ALL_CORRECT)

        assert outcome.status == "approved"
        assert outcome.auto_approved is True
        assert outcome.just_awarded is True
        assert outcome.awarded_points == 100
        assert stored_score("learner-1") == 100

    def test_rounding(self, make_transactor, three_mcq_quiz_id):
        outcome = make_transactor("learner-1").submit(three_mcq_quiz_id, [[0], [0], [1]])

        assert outcome.awarded_points == 7

    def test_mixed_quiz_is_not_auto_approved(self, make_transactor, mixed_quiz_id):
        outcome = make_transactor("learner-1").submit(mixed_quiz_id, [[1], {"value": "why"}])

        assert outcome.status == "submitted"
        assert outcome.auto_approved is False
        assert stored_score("learner-1") == 0

    def test_second_submit_is_duplicate_and_ledger_unchanged(self, make_transactor, mcq_quiz_id):
        transactor = make_transactor("learner-1")
        transactor.submit(mcq_quiz_id, ALL_CORRECT)

        with pytest.raises(DuplicateSubmission):
            transactor.submit(mcq_quiz_id, ALL_CORRECT)

        assert len(stored_submissions(mcq_quiz_id, "learner-1")) == 1
        assert stored_score("learner-1") == 100

    def test_unknown_assignment(self, make_transactor):
        with pytest.raises(NotFound):
            make_transactor("learner-1").submit(9999, [])

    def test_review_awards_once(self, make_transactor, task_id):
        outcome = make_transactor("learner-1").submit(task_id, {"text": "essay"})
        reviewer = make_transactor("reviewer-1", REVIEWER)

        first = reviewer.review(outcome.submission_id, "approved", 9)
        again = reviewer.review(outcome.submission_id, "approved", 9)

        assert first["status"] == "approved"
        assert first["awarded_points"] == 9
        assert again["awarded_points"] == 9
        assert again["reviewed_by"] == "reviewer-1"
        assert stored_score("learner-1") == 9

    def test_learner_cannot_review(self, make_transactor, task_id):
        outcome = make_transactor("learner-1").submit(task_id, {"text": "essay"})

        with pytest.raises(PermissionDenied):
            make_transactor("learner-1").review(outcome.submission_id, "approved", 10)
        assert stored_score("learner-1") == 0


class TestRecordsMatchAcrossChannels:
    def test_both_channels_write_the_same_record(self, client, mcq_quiz_id):
        http = AuthoritativeTransactor(client, token("learner-http"))
        direct = DirectTransactor(lambda: Session(test_engine), Identity(uid="learner-direct"))

        a = http.submit(mcq_quiz_id, ALL_CORRECT)
        b = direct.submit(mcq_quiz_id, ALL_CORRECT)

        assert (a.status, a.auto_score, a.awarded_points) == (b.status, b.auto_score, b.awarded_points)
        [row_a] = stored_submissions(mcq_quiz_id, "learner-http")
        [row_b] = stored_submissions(mcq_quiz_id, "learner-direct")
        assert row_a.answers == row_b.answers

    def test_duplicate_is_detected_across_channels(self, client, mcq_quiz_id):
        AuthoritativeTransactor(client, token("learner-1")).submit(mcq_quiz_id, ALL_CORRECT)
        direct = DirectTransactor(lambda: Session(test_engine), Identity(uid="learner-1"))

        with pytest.raises(DuplicateSubmission):
            direct.submit(mcq_quiz_id, [])
        assert stored_score("learner-1") == 100


def _unreachable_client():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://engine.invalid")


def _failing_server_client(status_code=502):
    return httpx.Client(
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code, text="Bad gateway")),
        base_url="http://engine.invalid",
    )


class TestAuthoritativeErrors:
    def test_connect_error_is_channel_unavailable(self, mcq_quiz_id):
        transactor = AuthoritativeTransactor(_unreachable_client(), token("learner-1"))

        with pytest.raises(ChannelUnavailable):
            transactor.submit(mcq_quiz_id, ALL_CORRECT)

    def test_gateway_failure_is_channel_unavailable(self, mcq_quiz_id):
        transactor = AuthoritativeTransactor(_failing_server_client(), token("learner-1"))

        with pytest.raises(ChannelUnavailable):
            transactor.submit(mcq_quiz_id, ALL_CORRECT)

    def test_bad_token_is_authentication_failure(self, client, mcq_quiz_id):
        transactor = AuthoritativeTransactor(client, "not-a-token")

        with pytest.raises(AuthenticationFailure):
            transactor.submit(mcq_quiz_id, ALL_CORRECT)
        assert stored_submissions(mcq_quiz_id, "learner-1") == []

    def test_client_built_from_settings(self):
        settings = Settings(api_base_url="http://engine.test", api_timeout_seconds=3.5)

        transactor = AuthoritativeTransactor.from_settings("learner-token", settings)

        assert str(transactor.http.base_url).rstrip("/") == "http://engine.test"
        assert transactor.http.timeout.connect == 3.5
        assert transactor.http.timeout.read == 3.5
        assert transactor.token == "learner-token"
        transactor.http.close()


class TestFallback:
    def _direct(self, uid="learner-1", role="learner"):
        return DirectTransactor(lambda: Session(test_engine), Identity(uid=uid, role=role))

    def test_falls_back_when_unreachable(self, mcq_quiz_id):
        transactor = FallbackTransactor(
            AuthoritativeTransactor(_unreachable_client(), token("learner-1")),
            self._direct(),
        )

        outcome = transactor.submit(mcq_quiz_id, ALL_CORRECT)

        assert outcome.awarded_points == 100
        assert stored_score("learner-1") == 100

    def test_duplicate_is_not_retried_on_fallback(self, client, mcq_quiz_id):
        primary = AuthoritativeTransactor(client, token("learner-1"))
        primary.submit(mcq_quiz_id, ALL_CORRECT)

        calls = []

        class RecordingDirect(DirectTransactor):
            def submit(self, *args, **kwargs):
                calls.append(args)
                return super().submit(*args, **kwargs)

        transactor = FallbackTransactor(
            primary,
            RecordingDirect(lambda: Session(test_engine), Identity(uid="learner-1")),
        )

        with pytest.raises(DuplicateSubmission):
            transactor.submit(mcq_quiz_id, ALL_CORRECT)
        assert calls == []

    def test_primary_success_skips_fallback(self, client, mcq_quiz_id):
        class ExplodingDirect(DirectTransactor):
            def submit(self, *args, **kwargs):
                raise AssertionError("fallback should not run")

        transactor = FallbackTransactor(
            AuthoritativeTransactor(client, token("learner-1")),
            ExplodingDirect(lambda: Session(test_engine), Identity(uid="learner-1")),
        )

        assert transactor.submit(mcq_quiz_id, ALL_CORRECT).awarded_points == 100

    def test_review_falls_back_when_unreachable(self, task_id):
        outcome = self._direct().submit(task_id, {"text": "essay"})
        transactor = FallbackTransactor(
            AuthoritativeTransactor(_unreachable_client(), token("reviewer-1", REVIEWER)),
            self._direct("reviewer-1", REVIEWER),
        )

        summary = transactor.review(outcome.submission_id, "approved", 10)

        assert summary["awarded_points"] == 10
        assert stored_score("learner-1") == 10
