#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Batch job orchestrator
Submits bulk generation jobs, polls the backend until a terminal status,
retrieves results, and recovers through an ordered fallback chain when the
status endpoint itself is unusable
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from .backend import BackendResponse, JobBackend
from .errors import (
    BatchError, BatchTimeout, Expired, JobFailed, MalformedResponse, TransientTransportError
)
from .models import BatchRequest, BatchStatus, GeneratedQuestion, JobHandle, map_questions
from .signals import BackendSignal, SignalKind, classify_backend_signal, looks_expired
from ..utils.config import BatchConfig
from ..utils.constants import STATUS_ENDPOINT_BROKEN_CODES

Strategy = Callable[[JobHandle], Awaitable[Optional[List[GeneratedQuestion]]]]


@dataclass
class RecoveryStrategy:
    """One step of the fallback chain"""
    name: str
    run: Strategy
    # Probing strategies are retried every poll round; degrading ones run once, last
    repeatable: bool = True


class StatusEndpointUnusable(TransientTransportError):
    """Status endpoint kept failing with codes that mean it is broken, not busy"""


class BatchOrchestrator:
    """
    Drives one or more batch jobs to completion

    Instances share nothing between jobs; the backend, clock and sleep are
    injected so tests can run the polling loop against fakes.
    """

    def __init__(self, backend: JobBackend, config: Optional[BatchConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initialize orchestrator

        Args:
            backend: Job backend client
            config: Polling and recovery settings
            clock: Monotonic clock in seconds
            sleep: Cooperative sleep coroutine
        """
        self.backend = backend
        self.config = config or BatchConfig()
        self.clock = clock
        self.sleep = sleep
        self.logger = logging.getLogger('cloudprepper.orchestrator')

        self.strategies: List[RecoveryStrategy] = [
            RecoveryStrategy("results_endpoint", self._recover_from_results),
            RecoveryStrategy("alternative_endpoint", self._recover_from_alternatives),
            RecoveryStrategy("resubmission", self._recover_by_resubmission, repeatable=False),
            RecoveryStrategy("per_item_generation", self._recover_by_per_item, repeatable=False),
        ]

    # ==================== Submission ====================

    async def submit(self, request: BatchRequest) -> Union[JobHandle, List[GeneratedQuestion]]:
        """
        Submit a generation request

        Args:
            request: Validated batch request

        Returns:
            Questions when the backend answered synchronously, otherwise a JobHandle
        """
        payload = request.to_payload()
        self.logger.info(f"Submitting batch request: {request.count} question(s) for {request.certification_type}")
        started_at = self.clock()
        response = await self.backend.submit(payload)

        body = response.body if isinstance(response.body, dict) else None
        if not response.ok:
            detail = None
            if body:
                detail = body.get("error") or body.get("message")
            raise JobFailed(
                None, None, detail,
                message=f"Batch API request failed with status {response.http_status}: {detail or 'no detail'}"
            )
        if body is None:
            raise MalformedResponse("Invalid batch API response: body is not a JSON object", response.body)

        questions = body.get("questions")
        if isinstance(questions, list) and questions:
            self.logger.info(f"Backend returned {len(questions)} question(s) synchronously")
            return map_questions(questions, request)

        job_id = body.get("batch_id")
        if job_id:
            status = BatchStatus.parse(body.get("status") or body.get("processing_status"))
            if status is BatchStatus.UNKNOWN:
                status = BatchStatus.PENDING
            self.logger.info(f"Batch submitted, batch_id: {job_id} (status: {status.value})")
            return JobHandle(job_id=str(job_id), status=status, request=request, started_at=started_at)

        raise MalformedResponse(
            "Invalid batch API response: expected batch_id or questions array", body
        )

    def resume(self, job_id: str, request: Optional[BatchRequest] = None) -> JobHandle:
        """Build a handle for a job submitted earlier (after a timeout or restart)"""
        return JobHandle(job_id=job_id, status=BatchStatus.UNKNOWN, request=request, started_at=self.clock())

    # ==================== Polling ====================

    async def await_completion(self, handle: JobHandle, poll_interval: Optional[float] = None,
                               max_wait: Optional[float] = None) -> List[GeneratedQuestion]:
        """
        Poll until the job is terminal, then retrieve its questions

        Args:
            handle: Job handle from submit() or resume()
            poll_interval: Seconds between polls
            max_wait: Wall-clock budget in seconds, measured from handle.started_at

        Returns:
            Generated questions

        Raises:
            JobFailed / Expired: backend reported terminal failure
            BatchTimeout: budget exceeded while the job was in flight or being recovered
            MalformedResponse: backend broke its response contract
            StatusEndpointUnusable: status endpoint broken and every recovery strategy exhausted
        """
        poll_interval = self.config.poll_interval if poll_interval is None else poll_interval
        max_wait = self.config.max_wait_time if max_wait is None else max_wait
        if handle.started_at is None:
            handle.started_at = self.clock()
        handle.poll_interval = poll_interval
        handle.max_wait = max_wait

        broken_streak = 0
        probe_rounds = 0
        poll_count = 0
        status_error: Optional[StatusEndpointUnusable] = None

        self.logger.info(
            f"Polling batch {handle.job_id} every {poll_interval}s (max wait {max_wait}s)"
        )

        while True:
            poll_count += 1
            signal = await self._poll_status(handle)
            elapsed = self.clock() - handle.started_at
            self.logger.info(
                f"[Poll #{poll_count}, {elapsed:.0f}s] batch {handle.job_id}: "
                f"{signal.kind.value} ({signal.status.value})"
            )

            if signal.kind is SignalKind.TERMINAL_FAILURE:
                raise self._failure_from_signal(handle, signal)

            if signal.kind is SignalKind.TERMINAL_SUCCESS:
                handle.status = signal.status
                if signal.items:
                    handle.retrieved_from = "status_endpoint"
                    return map_questions(signal.items, handle.request)
                try:
                    return await self.retrieve_results(handle)
                except TransientTransportError as e:
                    self.logger.warning(f"Results fetch failed transiently, will retry: {e}")
                    signal = BackendSignal(SignalKind.UNREACHABLE, detail=str(e))

            if signal.kind is SignalKind.NON_TERMINAL:
                handle.status = signal.status
                broken_streak = 0

            elif signal.kind is SignalKind.UNREACHABLE:
                if signal.http_status in STATUS_ENDPOINT_BROKEN_CODES:
                    broken_streak += 1
                else:
                    self.logger.warning(f"Error polling batch status (will retry): {signal.detail}")

                if broken_streak >= self.config.status_failure_threshold:
                    if status_error is None:
                        status_error = StatusEndpointUnusable(
                            f"Batch status endpoint error ({signal.http_status}) for batch "
                            f"{handle.job_id}: {signal.detail}",
                            http_status=signal.http_status,
                        )
                        self.logger.warning(f"{status_error}; switching to recovery strategies")

                    self._check_deadline(handle)
                    probe_rounds += 1
                    final = probe_rounds >= self.config.recovery_probe_rounds
                    items = await self._run_recovery(handle, final=final)
                    if items is not None:
                        return items
                    if final:
                        # Every strategy exhausted: surface the root cause, not the last fallback error
                        raise status_error

            elapsed = self.clock() - handle.started_at
            if elapsed > max_wait:
                raise BatchTimeout(handle.job_id, elapsed, max_wait)

            await self.sleep(poll_interval)

    async def _poll_status(self, handle: JobHandle) -> BackendSignal:
        """Query the status endpoint once; transport errors become UNREACHABLE"""
        try:
            response = await self.backend.status(handle.job_id)
        except TransientTransportError as e:
            return BackendSignal(SignalKind.UNREACHABLE, http_status=e.http_status, detail=str(e))
        return classify_backend_signal(response.http_status, response.body)

    def _failure_from_signal(self, handle: JobHandle, signal: BackendSignal) -> JobFailed:
        """Typed failure for a terminal-failure signal"""
        handle.status = signal.status if signal.status.is_failure else BatchStatus.FAILED
        if signal.expired:
            return Expired(handle.job_id, signal.detail)
        return JobFailed(handle.job_id, handle.status.value, signal.detail)

    # ==================== Retrieval ====================

    async def retrieve_results(self, handle: JobHandle) -> List[GeneratedQuestion]:
        """
        Fetch questions of a job whose status is success-terminal

        Any non-2xx response or explicit error body means the job failed
        late; that is not retried.
        """
        if not handle.status.is_success:
            raise BatchError(
                f"Refusing to fetch results of batch {handle.job_id} in status {handle.status.value}"
            )

        response = await self.backend.results(handle.job_id)
        signal = classify_backend_signal(response.http_status, response.body)

        if signal.kind is SignalKind.TERMINAL_SUCCESS:
            if signal.items is None:
                raise MalformedResponse(
                    "Invalid batch results: expected success flag and questions array", response.body
                )
            handle.retrieved_from = "results_endpoint"
            self.logger.info(f"Retrieved {len(signal.items)} question(s) from batch {handle.job_id}")
            return map_questions(signal.items, handle.request)

        if signal.kind is SignalKind.TERMINAL_FAILURE:
            raise self._failure_from_signal(handle, signal)

        if signal.kind is SignalKind.UNREACHABLE and signal.http_status is not None and not response.ok:
            if signal.expired or looks_expired(signal.detail):
                raise Expired(handle.job_id, signal.detail)
            raise JobFailed(
                handle.job_id, handle.status.value, signal.detail,
                message=f"Failed to retrieve batch results: {response.http_status} - {signal.detail}"
            )

        raise MalformedResponse(
            f"Invalid batch results for {handle.job_id}: {signal.detail or signal.status.value}",
            response.body,
        )

    # ==================== Recovery ====================

    def _check_deadline(self, handle: JobHandle) -> Optional[float]:
        """Seconds left in the wait budget; BatchTimeout once none is left"""
        remaining = handle.remaining(self.clock())
        if remaining is not None and remaining <= 0:
            raise BatchTimeout(handle.job_id, self.clock() - handle.started_at, handle.max_wait)
        return remaining

    async def _run_recovery(self, handle: JobHandle, final: bool) -> Optional[List[GeneratedQuestion]]:
        """
        Walk the fallback chain

        Args:
            handle: Job handle
            final: Also run the non-repeatable (degrading) strategies

        Returns:
            Questions from the first strategy that produced any, else None
        """
        for strategy in self.strategies:
            if not strategy.repeatable and not final:
                continue
            self.logger.info(f"Recovery strategy '{strategy.name}' for batch {handle.job_id}")
            try:
                items = await strategy.run(handle)
            except TransientTransportError as e:
                self.logger.info(f"Recovery strategy '{strategy.name}' unavailable: {e}")
                continue
            if items:
                handle.retrieved_from = strategy.name
                self.logger.info(f"Recovered {len(items)} question(s) via '{strategy.name}'")
                return items
        return None

    def _items_or_failure(self, handle: JobHandle, response: BackendResponse) -> Optional[List[GeneratedQuestion]]:
        """
        Interpret a probing response while the job status is unknown

        Non-2xx and not-yet-ready answers mean "not ready"; an explicit error body is fatal.
        """
        signal = classify_backend_signal(response.http_status, response.body)
        if signal.kind is SignalKind.TERMINAL_FAILURE:
            raise self._failure_from_signal(handle, signal)
        if signal.kind is SignalKind.TERMINAL_SUCCESS and signal.items:
            handle.status = signal.status
            return map_questions(signal.items, handle.request)
        if signal.kind is SignalKind.NON_TERMINAL:
            handle.status = signal.status
        return None

    async def _recover_from_results(self, handle: JobHandle) -> Optional[List[GeneratedQuestion]]:
        """Canonical results endpoint"""
        response = await self.backend.results(handle.job_id)
        return self._items_or_failure(handle, response)

    async def _recover_from_alternatives(self, handle: JobHandle) -> Optional[List[GeneratedQuestion]]:
        """Alternative endpoint path variants, in configured order"""
        for template in self.config.alternative_paths:
            path = template.format(batch_id=handle.job_id)
            try:
                response = await self.backend.probe(path)
            except TransientTransportError as e:
                self.logger.info(f"Alternative endpoint {path} failed: {e}")
                continue
            self.logger.info(f"Alternative endpoint {path} response: {response.http_status}")
            items = self._items_or_failure(handle, response)
            if items:
                return items
        return None

    async def _recover_by_resubmission(self, handle: JobHandle) -> Optional[List[GeneratedQuestion]]:
        """Re-ask the submission endpoint; only meaningful while the job was last seen pending"""
        if handle.status is not BatchStatus.PENDING:
            return None
        poll_interval = handle.poll_interval if handle.poll_interval is not None else self.config.poll_interval
        for attempt in range(1, self.config.resubmit_retries + 1):
            remaining = self._check_deadline(handle)
            wait = poll_interval * attempt
            if remaining is not None:
                wait = min(wait, remaining)
            self.logger.info(
                f"Waiting {wait}s before resubmission check {attempt}/{self.config.resubmit_retries}"
            )
            await self.sleep(wait)
            try:
                response = await self.backend.resubmit(handle.job_id)
            except TransientTransportError as e:
                self.logger.info(f"Resubmission check {attempt} failed: {e}")
                continue
            items = self._items_or_failure(handle, response)
            if items:
                return items
        return None

    async def _recover_by_per_item(self, handle: JobHandle) -> Optional[List[GeneratedQuestion]]:
        """Replay the original request through the per-item generator, one page per call"""
        request = handle.request
        if request is None:
            self.logger.info("Original request unknown, per-item generation not possible")
            return None

        page_size = max(1, self.config.per_item_page_size)
        collected: List[GeneratedQuestion] = []
        self.logger.info(
            f"Falling back to per-item generation: {request.count} question(s), "
            f"at least {math.ceil(request.count / page_size)} call(s)"
        )

        # Short pages are topped up; an empty page ends the strategy
        call = 0
        while len(collected) < request.count:
            self._check_deadline(handle)
            call += 1
            current = min(request.count - len(collected), page_size)
            response = await self.backend.generate(request.to_payload(count=current))
            body = response.body if isinstance(response.body, dict) else {}
            questions = body.get("questions")
            if not response.ok or body.get("success") is not True or not isinstance(questions, list):
                detail = body.get("error") or f"HTTP {response.http_status}"
                self.logger.warning(f"Per-item generation call {call} failed: {detail}")
                return None
            if not questions:
                self.logger.warning(f"Per-item generation call {call} returned no questions")
                return None
            mapped = map_questions(questions[:current], request)
            collected.extend(mapped)
            self.logger.info(
                f"Per-item call {call}: {len(mapped)} question(s), {len(collected)}/{request.count} so far"
            )

        return collected

    # ==================== Direct generation ====================

    async def generate_now(self, request: BatchRequest) -> List[GeneratedQuestion]:
        """
        Generate a small set of questions synchronously through the per-item endpoint

        Args:
            request: Validated request (count within the per-item cap)

        Returns:
            Generated questions
        """
        self.logger.info(f"Generating {request.count} question(s) for {request.certification_type}")
        response = await self.backend.generate(request.to_payload())
        body = response.body if isinstance(response.body, dict) else None

        if not response.ok:
            detail = (body or {}).get("error") or (body or {}).get("message")
            raise JobFailed(
                None, None, detail,
                message=f"API request failed with status {response.http_status}: {detail or 'no detail'}"
            )
        if body is None:
            raise MalformedResponse("Invalid API response: body is not a JSON object", response.body)
        if body.get("success") is False or body.get("error"):
            raise JobFailed(None, "failed", body.get("error") or body.get("error_message"))

        questions = body.get("questions")
        if not isinstance(questions, list):
            raise MalformedResponse("Invalid API response: expected questions array", body)
        return map_questions(questions, request)

    # ==================== Whole workflow ====================

    async def run(self, request: BatchRequest, poll_interval: Optional[float] = None,
                  max_wait: Optional[float] = None) -> 'BatchOutcome':
        """Submit and, for asynchronous jobs, wait for completion"""
        submitted = await self.submit(request)
        if isinstance(submitted, list):
            return BatchOutcome(questions=submitted, job_id=None, retrieved_from="submission")
        questions = await self.await_completion(submitted, poll_interval, max_wait)
        return BatchOutcome(questions=questions, job_id=submitted.job_id,
                            retrieved_from=submitted.retrieved_from)


@dataclass
class BatchOutcome:
    """Result of a whole batch run"""
    questions: List[GeneratedQuestion]
    job_id: Optional[str]
    retrieved_from: Optional[str]
