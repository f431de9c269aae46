import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from olympiad.students.student_models import SubjectScore

logger = logging.getLogger(__name__)

# lower-cased label -> stored subject key
SUBJECTS = {
    "english": "English",
    "mathematics": "Mathematics",
    "mental_ability": "Mental_ability",
    "science": "Science",
    "social_science": "Social_Science",
}

MARKS_PER_QUESTION = 4
WRONG_ANSWER_PENALTY = 1


def normalize_subject(label: Any) -> Optional[str]:
    if not isinstance(label, str):
        return None
    return SUBJECTS.get(label.strip().lower())


def is_skipped(answer: Any) -> bool:
    return answer is None or answer == ""


def empty_breakdown() -> Dict[str, SubjectScore]:
    return {name: SubjectScore() for name in SUBJECTS.values()}


def aggregate_subject_scores(
    questions: Sequence[Mapping[str, Any]],
    answers: Sequence[Any],
) -> Dict[str, SubjectScore]:
    """
    Score a submission subject by subject

    Every question on a recognised subject adds 4 to that subject's total.
    Correct answer: +4. Wrong answer: -1, never below 0. Skipped: no change.
    Missing trailing answers count as skipped.
    """
    breakdown = empty_breakdown()

    for index, question in enumerate(questions):
        subject = normalize_subject(question.get("subject"))
        if subject is None:
            logger.warning(
                f"[SCORING] Unrecognized subject {question.get('subject')!r} "
                f"in question #{index + 1}, skipping"
            )
            continue

        entry = breakdown[subject]
        entry.total += MARKS_PER_QUESTION

        answer = answers[index] if index < len(answers) else None
        if is_skipped(answer):
            continue
        if answer == question.get("answer"):
            entry.score += MARKS_PER_QUESTION
        else:
            entry.score = max(0, entry.score - WRONG_ANSWER_PENALTY)

    return breakdown


def breakdown_total(breakdown: Mapping[str, SubjectScore]) -> int:
    return sum(entry.score for entry in breakdown.values())


def breakdown_to_store(breakdown: Mapping[str, SubjectScore]) -> Dict[str, dict]:
    return {name: entry.dict() for name, entry in breakdown.items()}
