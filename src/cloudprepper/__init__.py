#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cloudprepper - Certification Question Generation Service
MCP server that drives bulk exam question generation and domain coverage analysis

Version: 1.0.0
"""

__version__ = "1.0.0"
__description__ = "MCP server for certification exam question batches and domain coverage"

# Export main classes and functions
from .core.orchestrator import BatchOrchestrator, BatchOutcome
from .core.coverage import analyze, analyze_certification

__all__ = [
    "BatchOrchestrator",
    "BatchOutcome",
    "analyze",
    "analyze_certification",
]
