#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Data model definitions
Batch requests, job handles, batch statuses and generated questions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..utils.constants import (
    CERTIFICATION_TYPES, DOMAIN_WEIGHTS, COGNITIVE_LEVELS, SKILL_LEVELS, OUTPUT_FORMATS,
    BATCH_MIN_COUNT, BATCH_MAX_COUNT, STATUS_SUCCESS, STATUS_FAILURE,
    DEFAULT_DOMAIN, DEFAULT_CATEGORY, DEFAULT_COGNITIVE_LEVEL, DEFAULT_SKILL_LEVEL
)
from ..utils.helpers import as_list
from .errors import MalformedResponse


class BatchStatus(Enum):
    """Backend job status"""
    PENDING = "pending"
    VALIDATING = "validating"
    IN_PROGRESS = "in_progress"
    PROCESSING = "processing"
    ENDED = "ended"
    COMPLETED = "completed"
    SUCCESS = "success"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    FAILED = "failed"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'BatchStatus':
        """Map a backend status string to a member, UNKNOWN for anything unrecognized"""
        if not value or not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_success(self) -> bool:
        return self.value in STATUS_SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.value in STATUS_FAILURE

    @property
    def is_terminal(self) -> bool:
        return self.is_success or self.is_failure


@dataclass
class BatchRequest:
    """Bulk question generation request"""
    certification_type: str
    count: int = 1
    domain_name: Optional[str] = None
    cognitive_levels: List[str] = field(default_factory=list)
    skill_levels: List[str] = field(default_factory=list)
    scenario_context: Optional[str] = None
    output_format: str = "json"

    def __post_init__(self):
        """Validate request fields"""
        if self.certification_type not in CERTIFICATION_TYPES:
            raise ValueError(
                f"certification_type must be one of {', '.join(CERTIFICATION_TYPES)}, "
                f"got {self.certification_type!r}"
            )
        if self.domain_name is not None:
            known = [name for name, _ in DOMAIN_WEIGHTS[self.certification_type]]
            if self.domain_name not in known:
                raise ValueError(f"Unknown domain for {self.certification_type}: {self.domain_name}")
        for level in self.cognitive_levels:
            if level not in COGNITIVE_LEVELS:
                raise ValueError(f"Unknown cognitive level: {level}")
        for level in self.skill_levels:
            if level not in SKILL_LEVELS:
                raise ValueError(f"Unknown skill level: {level}")
        if isinstance(self.count, bool) or not isinstance(self.count, int):
            raise ValueError(f"count must be an integer, got {self.count!r}")
        if self.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"output_format must be one of {', '.join(OUTPUT_FORMATS)}")

    @classmethod
    def from_args(cls, args: Dict[str, Any], max_count: int = BATCH_MAX_COUNT) -> 'BatchRequest':
        """
        Build a request from MCP tool arguments

        Args:
            args: Tool arguments
            max_count: Upper bound for count (50 for batches, 10 for single generation)

        Returns:
            Validated request
        """
        if not args.get("certification_type"):
            raise ValueError("certification_type is required")

        count = args.get("count", 1)
        if isinstance(count, float) and count.is_integer():
            count = int(count)
        if isinstance(count, int) and not isinstance(count, bool):
            if not BATCH_MIN_COUNT <= count <= max_count:
                raise ValueError(f"count must be between {BATCH_MIN_COUNT} and {max_count}, got {count}")

        return cls(
            certification_type=args["certification_type"],
            count=count,
            domain_name=args.get("domain_name"),
            cognitive_levels=as_list(args.get("cognitive_level")),
            skill_levels=as_list(args.get("skill_level")),
            scenario_context=args.get("scenario_context"),
            output_format=args.get("output_format") or "json",
        )

    def to_payload(self, count: Optional[int] = None) -> Dict[str, Any]:
        """Render the backend request body"""
        payload: Dict[str, Any] = {
            "certification_type": self.certification_type,
            "count": self.count if count is None else count,
        }
        if self.domain_name:
            payload["domain_name"] = self.domain_name
        if self.cognitive_levels:
            payload["cognitive_levels"] = list(self.cognitive_levels)
        if self.skill_levels:
            payload["skill_levels"] = list(self.skill_levels)
        if self.scenario_context:
            payload["scenario_context"] = self.scenario_context
        return payload

    def metadata(self) -> Dict[str, Any]:
        """Metadata block written alongside generated questions"""
        return {
            "certification_type": self.certification_type,
            "domain_name": self.domain_name,
            "cognitive_levels": list(self.cognitive_levels) or None,
            "skill_levels": list(self.skill_levels) or None,
        }


@dataclass
class JobHandle:
    """Transient handle for a job owned by the backend"""
    job_id: str
    status: BatchStatus = BatchStatus.PENDING
    request: Optional[BatchRequest] = None
    started_at: Optional[float] = None
    poll_interval: Optional[float] = None
    retrieved_from: Optional[str] = None
    max_wait: Optional[float] = None

    def remaining(self, now: float) -> Optional[float]:
        """Seconds left in the wait budget, None when no budget is set"""
        if self.max_wait is None or self.started_at is None:
            return None
        return self.started_at + self.max_wait - now


def _string_list(raw: Dict[str, Any], key: str) -> List[str]:
    """Read an optional list-of-strings field from a backend record"""
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise MalformedResponse(f"{key} must be a list of strings", raw)
    return list(value)


@dataclass
class GeneratedQuestion:
    """One generated exam question"""
    question_text: str
    options: List[str]
    correct_answers: List[int]
    explanation: str
    domain: str = DEFAULT_DOMAIN
    category: str = DEFAULT_CATEGORY
    cognitive_level: str = DEFAULT_COGNITIVE_LEVEL
    skill_level: str = DEFAULT_SKILL_LEVEL
    tags: List[str] = field(default_factory=list)
    references: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Check that answer indices point into the option list"""
        if not self.correct_answers:
            raise ValueError("Question has no correct answers")
        for index in self.correct_answers:
            if not 0 <= index < len(self.options):
                raise ValueError(
                    f"Correct answer index {index} out of range for {len(self.options)} options"
                )

    @property
    def multiple_answers(self) -> bool:
        return len(self.correct_answers) > 1

    @classmethod
    def from_api(cls, raw: Dict[str, Any], request: Optional[BatchRequest] = None) -> 'GeneratedQuestion':
        """
        Map a backend question record, filling gaps from the request then defaults

        Args:
            raw: Question object as returned by the backend
            request: Originating request, if known

        Returns:
            Question instance
        """
        if not isinstance(raw, dict):
            raise MalformedResponse(f"Question record is not an object: {type(raw).__name__}", raw)
        missing = [key for key in ("question_text", "options", "correct_answers") if not raw.get(key)]
        if missing:
            raise MalformedResponse(f"Question record missing {', '.join(missing)}", raw)

        if not isinstance(raw["question_text"], str):
            raise MalformedResponse("question_text must be a string", raw)
        if not isinstance(raw.get("explanation") or "", str):
            raise MalformedResponse("explanation must be a string", raw)
        options = _string_list(raw, "options")
        tags = _string_list(raw, "tags")
        references = _string_list(raw, "references")

        fallback_domain = request.domain_name if request else None
        fallback_cognitive = request.cognitive_levels[0] if request and request.cognitive_levels else None
        fallback_skill = request.skill_levels[0] if request and request.skill_levels else None

        try:
            return cls(
                question_text=raw["question_text"],
                options=options,
                correct_answers=[int(i) for i in raw["correct_answers"]],
                explanation=raw.get("explanation") or "",
                domain=raw.get("domain") or fallback_domain or DEFAULT_DOMAIN,
                category=raw.get("category") or raw.get("subdomain") or DEFAULT_CATEGORY,
                cognitive_level=raw.get("cognitive_level") or fallback_cognitive or DEFAULT_COGNITIVE_LEVEL,
                skill_level=raw.get("skill_level") or fallback_skill or DEFAULT_SKILL_LEVEL,
                tags=tags,
                references=references,
            )
        except (TypeError, ValueError) as e:
            raise MalformedResponse(f"Invalid question record: {e}", raw) from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "question_text": self.question_text,
            "options": list(self.options),
            "correct_answers": list(self.correct_answers),
            "multiple_answers": "1" if self.multiple_answers else "0",
            "explanation": self.explanation,
            "domain": self.domain,
            "category": self.category,
            "cognitive_level": self.cognitive_level,
            "skill_level": self.skill_level,
            "tags": list(self.tags),
            "references": list(self.references),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GeneratedQuestion':
        """Create object from dictionary written by to_dict"""
        return cls(
            question_text=data["question_text"],
            options=list(data["options"]),
            correct_answers=list(data["correct_answers"]),
            explanation=data.get("explanation", ""),
            domain=data.get("domain", DEFAULT_DOMAIN),
            category=data.get("category", DEFAULT_CATEGORY),
            cognitive_level=data.get("cognitive_level", DEFAULT_COGNITIVE_LEVEL),
            skill_level=data.get("skill_level", DEFAULT_SKILL_LEVEL),
            tags=list(data.get("tags") or []),
            references=list(data.get("references") or []),
        )


def map_questions(raw_items: List[Dict[str, Any]], request: Optional[BatchRequest] = None) -> List[GeneratedQuestion]:
    """Map a list of backend question records"""
    return [GeneratedQuestion.from_api(raw, request) for raw in raw_items]
