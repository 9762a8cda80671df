"""
am-i.exposed - Scoring
Reduces findings to a 0-100 score and a letter grade.
"""
from typing import Dict, List

from amiexposed.core.models import AnalysisMode, Finding, Grade, ScoringResult

# Transactions run many heuristics with a wide +/- range; address signals are
# almost all negative, so addresses start higher.
BASE_SCORES: Dict[AnalysisMode, int] = {
    AnalysisMode.TX: 70,
    AnalysisMode.ADDRESS: 93,
}

GRADE_THRESHOLDS = [
    (90, Grade.A_PLUS),
    (75, Grade.B),
    (50, Grade.C),
    (25, Grade.D),
]


def score_to_grade(score: int) -> Grade:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return Grade.F


def sort_findings(findings: List[Finding]) -> List[Finding]:
    """Stable sort, critical first, good last."""
    return sorted(findings, key=lambda f: f.severity.rank)


def calculate_score(findings: List[Finding], mode: AnalysisMode = AnalysisMode.TX) -> ScoringResult:
    """score = clamp(base + sum of impacts, 0, 100)"""
    raw = BASE_SCORES[AnalysisMode(mode)] + sum(f.score_impact for f in findings)
    score = max(0, min(100, raw))
    return ScoringResult(score=score, grade=score_to_grade(score), findings=sort_findings(findings))


def summary_sentiment(grade: Grade, findings: List[Finding]) -> str:
    """UI tone for a result: danger, warning, cautious or positive."""
    if grade is Grade.F:
        return "danger"
    if not any(f.score_impact < 0 for f in findings):
        return "positive"
    if grade in (Grade.A_PLUS, Grade.B):
        return "positive"
    if grade is Grade.C:
        return "cautious"
    return "warning"
