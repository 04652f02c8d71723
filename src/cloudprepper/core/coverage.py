#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Domain coverage gap analysis
Compares observed per-domain question counts with target quotas derived
from exam domain weights and classifies each domain as under, on-target or over
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence, Tuple

from ..utils.constants import (
    DOMAIN_WEIGHTS, COVERAGE_UNDER_THRESHOLD, COVERAGE_OVER_THRESHOLD, COVERAGE_WEIGHT_TOLERANCE,
    COVERAGE_SATURATED_PERCENTAGE
)

STATUS_UNDER = "under"
STATUS_ON_TARGET = "on-target"
STATUS_OVER = "over"


@dataclass(frozen=True)
class CoverageTarget:
    """A domain and its share (percent) of the total"""
    name: str
    weight: float


@dataclass
class DomainCoverage:
    """Coverage of one domain"""
    domain_name: str
    current_count: int
    target_count: int
    percentage: int
    status: str

    @property
    def shortfall(self) -> int:
        return max(self.target_count - self.current_count, 0)

    @property
    def surplus(self) -> int:
        return max(self.current_count - self.target_count, 0)

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary"""
        return {
            "domain_name": self.domain_name,
            "current_count": self.current_count,
            "target_count": self.target_count,
            "percentage": self.percentage,
            "status": self.status,
        }


@dataclass
class CoverageReport:
    """Derived coverage report, recomputed on every request"""
    certification_type: str
    total_questions: int
    target_questions: int
    domains: List[DomainCoverage]
    overall_coverage_percentage: int
    gaps: List[Tuple[str, int]] = field(default_factory=list)
    overrepresented: List[Tuple[str, int]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary"""
        return {
            "certification_type": self.certification_type,
            "total_questions": self.total_questions,
            "target_questions": self.target_questions,
            "overall_coverage_percentage": self.overall_coverage_percentage,
            "domains": [d.to_dict() for d in self.domains],
            "gaps": [{"domain_name": name, "needed": needed} for name, needed in self.gaps],
            "overrepresented": [{"domain_name": name, "excess": excess} for name, excess in self.overrepresented],
        }


def profile_for(certification_type: str) -> List[CoverageTarget]:
    """Static weight profile of a certification"""
    if certification_type not in DOMAIN_WEIGHTS:
        raise ValueError(f"Unknown certification type: {certification_type}")
    return [CoverageTarget(name, weight) for name, weight in DOMAIN_WEIGHTS[certification_type]]


def _round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; quotas round .5 upwards
    return int(math.floor(value + 0.5))


def classify_percentage(percentage: float, under: float = COVERAGE_UNDER_THRESHOLD,
                        over: float = COVERAGE_OVER_THRESHOLD) -> str:
    """Boundaries are inclusive on the on-target side"""
    if percentage < under:
        return STATUS_UNDER
    if percentage > over:
        return STATUS_OVER
    return STATUS_ON_TARGET


def validate_profile(profile: Sequence[CoverageTarget]):
    """Reject empty profiles, negative weights and weights not summing to ~100"""
    if not profile:
        raise ValueError("Coverage profile has no domains")
    names = [t.name for t in profile]
    if len(set(names)) != len(names):
        raise ValueError("Coverage profile lists a domain more than once")
    for target in profile:
        if target.weight < 0:
            raise ValueError(f"Negative weight for domain {target.name}: {target.weight}")
    total = sum(t.weight for t in profile)
    if abs(total - 100) > COVERAGE_WEIGHT_TOLERANCE:
        raise ValueError(f"Domain weights must sum to 100, got {total}")


def analyze(profile: Sequence[CoverageTarget], total_target: int, observed_counts: Mapping[str, int],
            certification_type: str = "", under: float = COVERAGE_UNDER_THRESHOLD,
            over: float = COVERAGE_OVER_THRESHOLD) -> CoverageReport:
    """
    Compare observed counts with weighted targets

    Args:
        profile: Domain weights (percent, summing to 100)
        total_target: Target total number of questions (> 0)
        observed_counts: Domain name -> observed count; missing domains count as 0
        certification_type: Label carried into the report
        under: Percent of target below which a domain is under-covered
        over: Percent of target above which a domain is over-covered

    Returns:
        CoverageReport; gaps and overrepresented keep profile order
    """
    validate_profile(profile)
    if isinstance(total_target, bool) or not isinstance(total_target, int) or total_target <= 0:
        raise ValueError(f"total_target must be a positive integer, got {total_target!r}")
    for name, count in observed_counts.items():
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValueError(f"Count for {name} must be an integer, got {count!r}")
        if count < 0:
            raise ValueError(f"Negative count for {name}: {count}")

    domains: List[DomainCoverage] = []
    gaps: List[Tuple[str, int]] = []
    overrepresented: List[Tuple[str, int]] = []
    total_current = 0

    for target in profile:
        current = observed_counts.get(target.name, 0)
        total_current += current
        target_count = _round_half_up(target.weight / 100 * total_target)

        if target_count == 0:
            # Avoid dividing by a zero quota: empty stays at 0, anything present saturates
            raw_percentage = 0.0 if current == 0 else float(COVERAGE_SATURATED_PERCENTAGE)
        else:
            raw_percentage = current / target_count * 100
        status = classify_percentage(raw_percentage, under, over)

        coverage = DomainCoverage(
            domain_name=target.name,
            current_count=current,
            target_count=target_count,
            percentage=_round_half_up(raw_percentage),
            status=status,
        )
        domains.append(coverage)

        if status == STATUS_UNDER:
            gaps.append((target.name, coverage.shortfall))
        elif status == STATUS_OVER:
            overrepresented.append((target.name, coverage.surplus))

    return CoverageReport(
        certification_type=certification_type,
        total_questions=total_current,
        target_questions=total_target,
        domains=domains,
        overall_coverage_percentage=_round_half_up(total_current / total_target * 100),
        gaps=gaps,
        overrepresented=overrepresented,
    )


def analyze_certification(certification_type: str, total_target: int,
                          observed_counts: Mapping[str, int]) -> CoverageReport:
    """Analyze against the static profile of a certification"""
    return analyze(profile_for(certification_type), total_target, observed_counts,
                   certification_type=certification_type)


def format_coverage_report(report: CoverageReport) -> str:
    """Render a report as the markdown text returned to the assistant"""
    lines: List[str] = []

    lines.append(f"# Domain Coverage Analysis - {report.certification_type}")
    lines.append("")
    lines.append(
        f"**Overall Progress:** {report.total_questions}/{report.target_questions} questions "
        f"({report.overall_coverage_percentage}%)"
    )
    lines.append("")

    lines.append("## Domain Breakdown")
    lines.append("")
    markers = {STATUS_UNDER: "🔴", STATUS_ON_TARGET: "🟢", STATUS_OVER: "🟡"}
    for domain in report.domains:
        lines.append(
            f"{markers[domain.status]} **{domain.domain_name}** - "
            f"{domain.current_count}/{domain.target_count} ({domain.percentage}%)"
        )
    lines.append("")

    if report.gaps:
        lines.append("## ⚠️ Gaps Needing Attention")
        lines.append("")
        for domain in report.domains:
            if domain.status == STATUS_UNDER:
                lines.append(
                    f"- {domain.domain_name}: Need {domain.shortfall} more questions "
                    f"({domain.current_count}/{domain.target_count})"
                )
        lines.append("")

    if report.overrepresented:
        lines.append("## 📊 Overrepresented Domains")
        lines.append("")
        for domain in report.domains:
            if domain.status == STATUS_OVER:
                lines.append(
                    f"- {domain.domain_name}: {domain.surplus} questions over target "
                    f"({domain.current_count}/{domain.target_count})"
                )
        lines.append("")

    lines.append("## 💡 Recommendations")
    lines.append("")
    if report.gaps:
        lines.append("**Priority:** Focus question generation on:")
        for name, needed in report.gaps:
            lines.append(f"- {name} ({needed} questions needed)")
    elif report.overall_coverage_percentage < 100:
        lines.append("**Status:** All domains balanced, continue building toward target")
    else:
        lines.append("**Status:** Target reached! Maintain balance as you add new questions")

    return "\n".join(lines)
