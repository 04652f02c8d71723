#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test Batch Orchestrator
Polling loop, result retrieval and the recovery fallback chain
"""

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fakes import FakeBackend, FakeClock, make_questions, ok, error

from cloudprepper.core.errors import (
    BatchError, BatchTimeout, Expired, JobFailed, MalformedResponse, TransientTransportError
)
from cloudprepper.core.models import BatchRequest, BatchStatus, JobHandle
from cloudprepper.core.orchestrator import BatchOrchestrator, StatusEndpointUnusable
from cloudprepper.utils.config import BatchConfig


def build(backend, **config_overrides):
    clock = FakeClock()
    config = BatchConfig(**config_overrides)
    orchestrator = BatchOrchestrator(backend, config, clock=clock, sleep=clock.sleep)
    return orchestrator, clock


class TestSubmission:
    """Submission outcomes"""

    def setup_method(self):
        self.request = BatchRequest(certification_type="CV0-004", count=3, domain_name="Cloud Security")

    @pytest.mark.asyncio
    async def test_submit_returns_handle(self):
        backend = FakeBackend(submit=[ok({"batch_id": "job-1", "status": "pending"})])
        orchestrator, _ = build(backend)

        handle = await orchestrator.submit(self.request)

        assert isinstance(handle, JobHandle)
        assert handle.job_id == "job-1"
        assert handle.status is BatchStatus.PENDING
        assert handle.request is self.request
        assert backend.payloads("submit")[0] == {
            "certification_type": "CV0-004", "count": 3, "domain_name": "Cloud Security"
        }

    @pytest.mark.asyncio
    async def test_synchronous_answer_short_circuits(self):
        backend = FakeBackend(submit=[ok({"success": True, "questions": make_questions(3)})])
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(self.request)

        assert len(outcome.questions) == 3
        assert outcome.job_id is None
        assert outcome.retrieved_from == "submission"
        assert backend.count("status") == 0

    @pytest.mark.asyncio
    async def test_body_without_id_or_questions_is_malformed(self):
        backend = FakeBackend(submit=[ok({"success": True})])
        orchestrator, _ = build(backend)

        with pytest.raises(MalformedResponse):
            await orchestrator.submit(self.request)

    @pytest.mark.asyncio
    async def test_rejected_submission_fails(self):
        backend = FakeBackend(submit=[error(400, {"error": "count out of range"})])
        orchestrator, _ = build(backend)

        with pytest.raises(JobFailed) as exc_info:
            await orchestrator.submit(self.request)
        assert "400" in str(exc_info.value)
        assert "count out of range" in str(exc_info.value)


class TestPolling:
    """Status polling until a terminal status"""

    def setup_method(self):
        self.request = BatchRequest(certification_type="CV0-004", count=3)
        self.submitted = ok({"batch_id": "job-1", "status": "pending"})

    @pytest.mark.asyncio
    async def test_completed_then_results(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"processing_status": "in_progress"}), ok({"processing_status": "ended"})],
            results=[ok({"success": True, "questions": make_questions(3)})],
        )
        orchestrator, clock = build(backend, poll_interval=30)

        outcome = await orchestrator.run(self.request)

        assert len(outcome.questions) == 3
        assert outcome.job_id == "job-1"
        assert outcome.retrieved_from == "results_endpoint"
        assert clock.sleeps == [30]

    @pytest.mark.asyncio
    async def test_items_in_status_body_skip_results_call(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"status": "completed", "questions": make_questions(2)})],
        )
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(self.request)

        assert len(outcome.questions) == 2
        assert outcome.retrieved_from == "status_endpoint"
        assert backend.count("results") == 0

    @pytest.mark.asyncio
    async def test_expired_on_first_poll_never_fetches_results(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"processing_status": "expired"})],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(Expired) as exc_info:
            await orchestrator.run(self.request)

        assert exc_info.value.job_id == "job-1"
        assert "job-1" in str(exc_info.value)
        assert backend.count("results") == 0

    @pytest.mark.asyncio
    async def test_failed_status_raises_job_failed(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"status": "failed", "error": "model overloaded"})],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(JobFailed) as exc_info:
            await orchestrator.run(self.request)
        assert not isinstance(exc_info.value, Expired)
        assert exc_info.value.status == "failed"
        assert exc_info.value.detail == "model overloaded"

    @pytest.mark.asyncio
    async def test_results_error_after_success_status_is_expired(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"status": "completed"})],
            results=[ok({"success": False, "error": "Batch does not exist"})],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(Expired):
            await orchestrator.run(self.request)

    @pytest.mark.asyncio
    async def test_results_without_questions_is_malformed(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"status": "completed"})],
            results=[ok({"status": "completed"})],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(MalformedResponse):
            await orchestrator.run(self.request)

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[
                TransientTransportError("connection reset"),
                TransientTransportError("connection reset"),
                ok({"status": "completed"}),
            ],
            results=[ok({"success": True, "questions": make_questions(3)})],
        )
        orchestrator, clock = build(backend, poll_interval=10)

        outcome = await orchestrator.run(self.request)

        assert len(outcome.questions) == 3
        assert backend.count("status") == 3
        assert clock.sleeps == [10, 10]

    @pytest.mark.asyncio
    async def test_timeout_is_resumable(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[ok({"status": "in_progress"})],
        )
        orchestrator, clock = build(backend)

        with pytest.raises(BatchTimeout) as exc_info:
            await orchestrator.run(self.request, poll_interval=30, max_wait=100)

        assert exc_info.value.job_id == "job-1"
        assert exc_info.value.elapsed > 100
        assert "batch_id" in str(exc_info.value)
        # 0, 30, 60, 90 are within budget; the poll at 120 exceeds it
        assert backend.count("status") == 5

    @pytest.mark.asyncio
    async def test_resume_polls_existing_job(self):
        backend = FakeBackend(
            status=[ok({"status": "ended"})],
            results=[ok({"success": True, "questions": make_questions(4)})],
        )
        orchestrator, _ = build(backend)

        handle = orchestrator.resume("job-9")
        questions = await orchestrator.await_completion(handle, poll_interval=5, max_wait=60)

        assert len(questions) == 4
        assert handle.status is BatchStatus.ENDED
        assert backend.count("submit") == 0

    @pytest.mark.asyncio
    async def test_results_refused_while_not_successful(self):
        orchestrator, _ = build(FakeBackend())
        handle = JobHandle(job_id="job-1", status=BatchStatus.PENDING)

        with pytest.raises(BatchError):
            await orchestrator.retrieve_results(handle)


class TestRecovery:
    """Fallback chain when the status endpoint keeps failing"""

    def setup_method(self):
        self.submitted = ok({"batch_id": "job-1", "status": "pending"})

    @pytest.mark.asyncio
    async def test_results_endpoint_recovers_after_threshold(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[ok({"success": True, "questions": make_questions(3)})],
        )
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(BatchRequest(certification_type="CV0-004", count=3))

        assert len(outcome.questions) == 3
        assert outcome.retrieved_from == "results_endpoint"
        assert backend.count("status") == 3

    @pytest.mark.asyncio
    async def test_alternative_path_recovers(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(404)],
            results=[error(404)],
            probe=[error(404), ok({"status": "completed", "questions": make_questions(2)})],
        )
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(BatchRequest(certification_type="CV0-004", count=2))

        assert len(outcome.questions) == 2
        assert outcome.retrieved_from == "alternative_endpoint"
        assert [call[1] for call in backend.calls if call[0] == "probe"] == [
            "/api/questions/batch/job-1",
            "/api/batch/job-1/results",
        ]

    @pytest.mark.asyncio
    async def test_per_item_generation_pages_request(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
            resubmit=[error(404)],
            generate=[
                ok({"success": True, "questions": make_questions(10)}),
                ok({"success": True, "questions": make_questions(10, start=10)}),
                ok({"success": True, "questions": make_questions(5, start=20)}),
            ],
        )
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(BatchRequest(certification_type="CV0-004", count=25))

        assert len(outcome.questions) == 25
        assert outcome.retrieved_from == "per_item_generation"
        assert [p["count"] for p in backend.payloads("generate")] == [10, 10, 5]
        assert backend.count("resubmit") == 3

    @pytest.mark.asyncio
    async def test_per_item_generation_tops_up_short_pages(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
            resubmit=[error(404)],
            generate=[ok({"success": True, "questions": make_questions(5)})],
        )
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(BatchRequest(certification_type="CV0-004", count=25))

        assert len(outcome.questions) == 25
        assert outcome.retrieved_from == "per_item_generation"
        assert [p["count"] for p in backend.payloads("generate")] == [10, 10, 10, 10, 5]

    @pytest.mark.asyncio
    async def test_per_item_generation_empty_page_is_not_success(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
            resubmit=[error(404)],
            generate=[
                ok({"success": True, "questions": make_questions(10)}),
                ok({"success": True, "questions": []}),
            ],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(StatusEndpointUnusable):
            await orchestrator.run(BatchRequest(certification_type="CV0-004", count=25))
        assert backend.count("generate") == 2

    @pytest.mark.asyncio
    async def test_wait_budget_checked_before_recovery_round(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
            resubmit=[error(404)],
            generate=[error(503, {"error": "generator offline"})],
        )
        orchestrator, clock = build(backend)

        with pytest.raises(BatchTimeout) as exc_info:
            await orchestrator.run(BatchRequest(certification_type="CV0-004", count=5),
                                   poll_interval=30, max_wait=100)

        # Recovery rounds at 60s and 90s; the round due at 120s is past the budget
        assert clock.sleeps == [30, 30, 30, 30]
        assert exc_info.value.max_wait == 100
        assert backend.count("resubmit") == 0
        assert backend.count("generate") == 0

    @pytest.mark.asyncio
    async def test_resubmission_waits_cut_to_remaining_budget(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
            resubmit=[error(404)],
            generate=[error(503, {"error": "generator offline"})],
        )
        orchestrator, clock = build(backend)

        with pytest.raises(BatchTimeout):
            await orchestrator.run(BatchRequest(certification_type="CV0-004", count=5),
                                   poll_interval=30, max_wait=200)

        # Degrading round starts at 120s: waits of 30s and 60s, the second cut to 50s
        assert clock.sleeps == [30, 30, 30, 30, 30, 50]
        assert clock.now - 1000.0 <= 200
        assert backend.count("resubmit") == 2
        assert backend.count("generate") == 0

    @pytest.mark.asyncio
    async def test_exhausted_chain_surfaces_status_error(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
            resubmit=[error(404)],
            generate=[error(503, {"error": "generator offline"})],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(StatusEndpointUnusable) as exc_info:
            await orchestrator.run(BatchRequest(certification_type="CV0-004", count=5))
        assert exc_info.value.http_status == 500

    @pytest.mark.asyncio
    async def test_explicit_error_during_recovery_is_fatal(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(404)],
            results=[ok({"success": False, "error": "Batch processing failed"})],
        )
        orchestrator, _ = build(backend)

        with pytest.raises(JobFailed):
            await orchestrator.run(BatchRequest(certification_type="CV0-004", count=5))
        assert backend.count("probe") == 0

    @pytest.mark.asyncio
    async def test_resubmission_skipped_when_status_unknown(self):
        backend = FakeBackend(
            status=[error(500)],
            results=[error(404)],
            probe=[error(404)],
        )
        orchestrator, _ = build(backend)

        handle = orchestrator.resume("job-7")
        with pytest.raises(StatusEndpointUnusable):
            await orchestrator.await_completion(handle, poll_interval=5, max_wait=3600)

        # No request is known either, so neither degrading strategy calls the backend
        assert backend.count("resubmit") == 0
        assert backend.count("generate") == 0

    @pytest.mark.asyncio
    async def test_non_broken_errors_do_not_trigger_recovery(self):
        backend = FakeBackend(
            submit=[self.submitted],
            status=[error(502), error(502), error(502), ok({"status": "completed"})],
            results=[ok({"success": True, "questions": make_questions(1)})],
        )
        orchestrator, _ = build(backend)

        outcome = await orchestrator.run(BatchRequest(certification_type="CV0-004", count=1))

        assert outcome.retrieved_from == "results_endpoint"
        assert backend.count("probe") == 0


class TestDirectGeneration:
    """Synchronous per-item generation"""

    @pytest.mark.asyncio
    async def test_generate_now_maps_questions(self):
        backend = FakeBackend(generate=[ok({"success": True, "questions": make_questions(2)})])
        orchestrator, _ = build(backend)
        request = BatchRequest(certification_type="SAA-C03", count=2, skill_levels=["Advanced"])

        questions = await orchestrator.generate_now(request)

        assert len(questions) == 2
        assert backend.payloads("generate")[0]["skill_levels"] == ["Advanced"]

    @pytest.mark.asyncio
    async def test_generate_now_error_body(self):
        backend = FakeBackend(generate=[ok({"success": False, "error": "quota exceeded"})])
        orchestrator, _ = build(backend)

        with pytest.raises(JobFailed):
            await orchestrator.generate_now(BatchRequest(certification_type="SAA-C03"))
