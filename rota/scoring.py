"""
Fairness scoring for coverage candidates.

score = recency (0..40) + workload (0..45) + grade (0..15)

- recency rewards time since the candidate's last covered session and
  saturates after `recency_saturation_days`; never having covered earns
  the full weight.
- workload is relative to the busiest candidate in the pool: the
  heaviest scores 0, an idle candidate the full weight.
- grade pays out when the duty has no preferred grade or the candidate
  matches it.

Every component explains itself in `reasons`. The score is advisory.
"""

from datetime import date
from typing import List, Optional

from .models import CandidateFacts, Duty, EngineConfig, RankedCandidate


def _plural(n: int, word: str, plural: Optional[str] = None) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {plural or word + 's'}"


def recency_component(facts: CandidateFacts, on: date, config: EngineConfig):
    if facts.last_coverage_date is None:
        return config.recency_weight, "Never assigned coverage"
    idle = max(0, (on - facts.last_coverage_date).days)
    fraction = min(idle, config.recency_saturation_days) / config.recency_saturation_days
    return config.recency_weight * fraction, f"No coverage in {_plural(idle, 'day')}"


def workload_component(facts: CandidateFacts, max_load: int, config: EngineConfig):
    window = config.workload_window_days
    reasons = [f"{_plural(facts.duty_count, 'duty', 'duties')} in last {window} days"]
    if facts.oncall_count:
        reasons.append(f"{_plural(facts.oncall_count, 'on-call')} in last {window} days")
    if facts.coverage_count:
        reasons.append(f"{_plural(facts.coverage_count, 'coverage')} in last {window} days")
    if max_load <= 0:
        return config.workload_weight, reasons
    return config.workload_weight * (1 - facts.workload / max_load), reasons


def grade_component(facts: CandidateFacts, duty: Optional[Duty], config: EngineConfig):
    preferred = duty.preferred_grade if duty is not None else None
    if not preferred:
        return config.grade_weight, None
    if facts.grade == preferred:
        return config.grade_weight, f"Grade matches ({preferred})"
    return 0.0, f"Grade mismatch (prefers {preferred})"


def rank_candidates(
    pool: List[CandidateFacts],
    duty: Optional[Duty],
    on: date,
    config: Optional[EngineConfig] = None,
) -> List[RankedCandidate]:
    """Score and order the eligible pool: highest score first, ties by clinician id."""
    config = config or EngineConfig()
    max_load = max((f.workload for f in pool), default=0)

    ranked = []
    for facts in pool:
        recency, recency_reason = recency_component(facts, on, config)
        workload, workload_reasons = workload_component(facts, max_load, config)
        grade, grade_reason = grade_component(facts, duty, config)

        reasons = [recency_reason] + workload_reasons
        if grade_reason:
            reasons.append(grade_reason)
        if facts.resting:
            reasons.append("On post-on-call rest")

        ranked.append(RankedCandidate(
            clinician_id=facts.clinician_id,
            clinician_name=facts.clinician_name,
            grade=facts.grade,
            score=round(recency + workload + grade, 1),
            reasons=reasons,
            workload_count=facts.workload,
            last_coverage_date=facts.last_coverage_date,
        ))

    ranked.sort(key=lambda r: (-r.score, r.clinician_id))
    return ranked
