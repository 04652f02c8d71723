# Batch orchestration and coverage analysis module

from .backend import BackendResponse, JobBackend, HttpJobBackend
from .coverage import CoverageReport, DomainCoverage, analyze, analyze_certification
from .errors import BatchError, MalformedResponse, JobFailed, Expired, BatchTimeout, TransientTransportError
from .models import BatchRequest, BatchStatus, GeneratedQuestion, JobHandle
from .orchestrator import BatchOrchestrator, BatchOutcome
from .signals import BackendSignal, SignalKind, classify_backend_signal

__all__ = [
    'BackendResponse',
    'JobBackend',
    'HttpJobBackend',
    'CoverageReport',
    'DomainCoverage',
    'analyze',
    'analyze_certification',
    'BatchError',
    'MalformedResponse',
    'JobFailed',
    'Expired',
    'BatchTimeout',
    'TransientTransportError',
    'BatchRequest',
    'BatchStatus',
    'GeneratedQuestion',
    'JobHandle',
    'BatchOrchestrator',
    'BatchOutcome',
    'BackendSignal',
    'SignalKind',
    'classify_backend_signal',
]
