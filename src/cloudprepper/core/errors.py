#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Batch error types
Typed failures raised by the batch orchestrator and the job backend client
"""

from typing import Optional


class BatchError(Exception):
    """Base class for batch workflow failures"""


class MalformedResponse(BatchError):
    """Backend response violated its contract (not retried)"""

    def __init__(self, message: str, body: Optional[object] = None):
        super().__init__(message)
        self.body = body


class JobFailed(BatchError):
    """Backend reported a terminal failure for the job"""

    def __init__(self, job_id: Optional[str], status: Optional[str], detail: Optional[str] = None,
                 message: Optional[str] = None):
        self.job_id = job_id
        self.status = status
        self.detail = detail
        if message is None:
            message = f"Batch processing failed with status: {status or 'unknown'}"
            if detail:
                message += f". Error: {detail}"
        super().__init__(message)


class Expired(JobFailed):
    """Job expired or is unknown to the backend; results can no longer be retrieved"""

    def __init__(self, job_id: Optional[str], detail: Optional[str] = None):
        message = (
            f"Batch {job_id} has expired or does not exist at the backend. "
            f"Expired batches cannot be retrieved; submit a new batch instead."
        )
        if detail:
            message += f" Original error: {detail}"
        super().__init__(job_id, 'expired', detail, message=message)


class BatchTimeout(BatchError):
    """Job did not reach a terminal status within the wait budget (resumable)"""

    def __init__(self, job_id: str, elapsed: float, max_wait: float):
        self.job_id = job_id
        self.elapsed = elapsed
        self.max_wait = max_wait
        super().__init__(
            f"Batch processing timeout: batch {job_id} exceeded {max_wait:.0f}s wait time "
            f"(elapsed {elapsed:.0f}s); resume later with the same batch_id"
        )


class TransientTransportError(BatchError):
    """Network failure or retryable HTTP error while talking to the backend"""

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status
