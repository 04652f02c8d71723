#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Backend signal classification
Turns one backend HTTP exchange (status code + decoded body) into a single
classification that the batch polling loop acts on
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .models import BatchStatus
from ..utils.constants import EXPIRED_ERROR_MARKERS, STATUS_IN_FLIGHT


class SignalKind(Enum):
    """What a backend exchange says about the job"""
    TERMINAL_SUCCESS = "terminal_success"
    TERMINAL_FAILURE = "terminal_failure"
    NON_TERMINAL = "non_terminal"
    UNREACHABLE = "unreachable"


@dataclass
class BackendSignal:
    """Classified backend exchange"""
    kind: SignalKind
    status: BatchStatus = BatchStatus.UNKNOWN
    http_status: Optional[int] = None
    detail: Optional[str] = None
    items: Optional[List[Dict[str, Any]]] = None
    expired: bool = False


def _error_text(body: Dict[str, Any]) -> Optional[str]:
    """First non-empty error field of a body"""
    for key in ("error", "error_message", "message"):
        value = body.get(key)
        if value:
            if isinstance(value, dict):
                value = value.get("message") or str(value)
            return str(value)
    return None


def _status_field(body: Dict[str, Any]) -> Optional[str]:
    """Status string, preferring processing_status over status"""
    for key in ("processing_status", "status"):
        value = body.get(key)
        if isinstance(value, str) and value.strip() and value.strip().lower() != "undefined":
            return value
    return None


def looks_expired(detail: Optional[str]) -> bool:
    """Whether an error message says the job expired or is unknown to the backend"""
    if not detail:
        return False
    lowered = detail.lower()
    return any(marker in lowered for marker in EXPIRED_ERROR_MARKERS)


def classify_backend_signal(http_status: Optional[int], body: Any) -> BackendSignal:
    """
    Classify one backend exchange

    Args:
        http_status: HTTP status code, None when no response was received
        body: Decoded JSON body (None when absent or not JSON)

    Returns:
        BackendSignal; UNREACHABLE covers transport failures, non-2xx responses
        and bodies that carry no recognizable signal
    """
    if http_status is None:
        return BackendSignal(SignalKind.UNREACHABLE, detail="no response from backend")

    if not 200 <= http_status < 300:
        detail = _error_text(body) if isinstance(body, dict) else None
        return BackendSignal(
            SignalKind.UNREACHABLE,
            http_status=http_status,
            detail=detail or f"HTTP {http_status}",
            expired=looks_expired(detail),
        )

    if not isinstance(body, dict):
        return BackendSignal(
            SignalKind.UNREACHABLE,
            http_status=http_status,
            detail="response body is not a JSON object",
        )

    raw_status = _status_field(body)
    status = BatchStatus.parse(raw_status)
    explicit_error = body.get("success") is False or bool(body.get("error") or body.get("error_message"))
    items = body.get("questions") if isinstance(body.get("questions"), list) else None

    # Any explicit error signal is fatal, whatever the status field says
    if explicit_error or status.is_failure:
        error = _error_text(body)
        if not status.is_failure:
            status = BatchStatus.FAILED
        return BackendSignal(
            SignalKind.TERMINAL_FAILURE,
            status=status,
            http_status=http_status,
            detail=error,
            expired=status is BatchStatus.EXPIRED or looks_expired(error),
        )

    if status.is_success:
        return BackendSignal(SignalKind.TERMINAL_SUCCESS, status=status, http_status=http_status,
                             items=items)

    if status.value in STATUS_IN_FLIGHT:
        return BackendSignal(SignalKind.NON_TERMINAL, status=status, http_status=http_status)

    # Results bodies carry no status field, only the question list
    if items is not None and raw_status is None:
        return BackendSignal(SignalKind.TERMINAL_SUCCESS, status=BatchStatus.COMPLETED,
                             http_status=http_status, items=items)

    detail = f"unrecognized status {raw_status!r}" if raw_status else "response carries no status"
    return BackendSignal(SignalKind.UNREACHABLE, http_status=http_status, detail=detail)
