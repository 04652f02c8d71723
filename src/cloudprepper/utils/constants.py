#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Constants definition module
Defines certification profiles, batch status vocabularies and default limits
"""

from typing import Dict, List, Set, Tuple

# ==================== Certification Types ====================

CERT_CV0_004 = "CV0-004"
CERT_SAA_C03 = "SAA-C03"

CERTIFICATION_TYPES: Tuple[str, ...] = (CERT_CV0_004, CERT_SAA_C03)

# ==================== Domain Weight Profiles ====================

# Official exam domain weights (percent); each profile sums to 100
DOMAIN_WEIGHTS: Dict[str, List[Tuple[str, int]]] = {
    CERT_CV0_004: [
        ("Cloud Architecture and Design", 23),
        ("Cloud Deployment", 19),
        ("Cloud Security", 19),
        ("Cloud Operations and Support", 17),
        ("Troubleshooting", 12),
        ("DevOps Fundamentals", 10),
    ],
    CERT_SAA_C03: [
        ("Design Secure Architectures", 30),
        ("Design Resilient Architectures", 26),
        ("Design High-Performing Architectures", 24),
        ("Design Cost-Optimized Architectures", 20),
    ],
}

DOMAIN_SUBDOMAINS: Dict[str, List[str]] = {
    "Cloud Architecture and Design": [
        "Cloud service models and delivery",
        "High availability and business continuity",
        "Cloud migration strategies",
        "Performance optimization",
        "Network architecture and components",
    ],
    "Cloud Deployment": [
        "Infrastructure as Code",
        "Configuration management",
        "Container orchestration",
        "Cloud resource provisioning",
        "Migration and integration",
    ],
    "Cloud Security": [
        "Identity and access management",
        "Data security and encryption",
        "Network security",
        "Compliance and governance",
        "Vulnerability management",
    ],
    "Cloud Operations and Support": [
        "Monitoring and logging",
        "Backup and disaster recovery",
        "Cost optimization",
        "Performance tuning",
        "Automation and orchestration",
    ],
    "Troubleshooting": [
        "Network connectivity issues",
        "Performance degradation",
        "Security incidents",
        "Deployment failures",
        "Integration problems",
    ],
    "DevOps Fundamentals": [
        "CI/CD pipelines",
        "Version control",
        "Infrastructure as Code principles",
        "Collaboration and communication",
        "Agile methodologies",
    ],
}

# ==================== Question Classification ====================

COGNITIVE_LEVELS: Tuple[str, ...] = (
    "Knowledge",
    "Comprehension",
    "Application",
    "Analysis",
    "Synthesis",
    "Evaluation",
)

SKILL_LEVELS: Tuple[str, ...] = (
    "Beginner",
    "Intermediate",
    "Advanced",
    "Expert",
)

DEFAULT_DOMAIN = "General"
DEFAULT_CATEGORY = "Certification Topic"
DEFAULT_COGNITIVE_LEVEL = "Application"
DEFAULT_SKILL_LEVEL = "Intermediate"

# ==================== Batch Status Vocabulary ====================

# Backend status strings, grouped by meaning
STATUS_SUCCESS: Set[str] = {"ended", "completed", "success"}
STATUS_FAILURE: Set[str] = {"expired", "cancelled", "failed", "error"}
STATUS_IN_FLIGHT: Set[str] = {"pending", "validating", "in_progress", "processing"}

# Substrings that mark a results error as an expired or unknown job
EXPIRED_ERROR_MARKERS: Tuple[str, ...] = (
    "expired",
    "does not exist",
    "not found",
    "invalid",
    "empty status received",
)

# HTTP codes after which the status endpoint is considered broken rather than busy
STATUS_ENDPOINT_BROKEN_CODES: Set[int] = {404, 500}

# ==================== Batch Limits ====================

BATCH_MIN_COUNT = 1
BATCH_MAX_COUNT = 50
SINGLE_MAX_COUNT = 10

DEFAULT_POLL_INTERVAL = 30       # Seconds between status polls
DEFAULT_MAX_WAIT_TIME = 3600     # Seconds before giving up on a job
POLL_INTERVAL_RANGE = (5, 300)
MAX_WAIT_TIME_RANGE = (10, 7200)

DEFAULT_PER_ITEM_PAGE_SIZE = 10  # Per-item generator cap per call
DEFAULT_RESUBMIT_RETRIES = 3
DEFAULT_STATUS_FAILURE_THRESHOLD = 3  # Consecutive 404/500 polls before recovery starts
DEFAULT_RECOVERY_PROBE_ROUNDS = 3     # Probe rounds before degrading to resubmission/per-item

DEFAULT_ALTERNATIVE_PATHS: Tuple[str, ...] = (
    "/api/questions/batch/{batch_id}",
    "/api/batch/{batch_id}/results",
    "/api/batch/{batch_id}/status",
    "/api/batch/{batch_id}",
)

OUTPUT_FORMATS: Tuple[str, ...] = ("json", "sql")

# ==================== Coverage Thresholds ====================

COVERAGE_UNDER_THRESHOLD = 80    # Percent of target below which a domain is under
COVERAGE_OVER_THRESHOLD = 120    # Percent of target above which a domain is over
COVERAGE_MIN_TOTAL_TARGET = 50
COVERAGE_DEFAULT_TOTAL_TARGET = 200
COVERAGE_WEIGHT_TOLERANCE = 0.5  # Allowed drift of a profile's weight sum from 100
COVERAGE_SATURATED_PERCENTAGE = 999  # Reported when a zero quota has questions

# ==================== SQL Output ====================

SQL_TARGET_TABLE = "prepper.comptia_cloud_plus_questions"
SQL_ID_SEQUENCE = "prepper.question_id_seq"
SQL_NUMBER_SEQUENCE = "prepper.question_number_seq"
