"""Scoring helpers shared by submission and history endpoints.

Three percentages describe a submission:

- main score: correct answers over the user's daily MCQ limit (only when a
  limit is configured);
- attempt overview: cumulative correct over cumulative answered questions,
  across every attempt the user made on the exam;
- overall result: correct answers over the size of the exam's question pool.

The primary score is the main score when it exists, else the attempt
overview.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Set


def percentage(numerator: float, denominator: float) -> float:
    """`numerator / denominator` as a percentage, 0.0 for an empty denominator."""
    if not denominator or denominator <= 0:
        return 0.0
    return (numerator / denominator) * 100


def answered_question_ids(attempts: Iterable) -> Set[str]:
    """Question ids (as strings) with a non-null answer in any of `attempts`."""
    out = set()
    for attempt in attempts:
        answers = attempt.answers if isinstance(attempt.answers, dict) else {}
        for qid, answer in answers.items():
            if answer is not None:
                out.add(str(qid))
    return out


def count_answered(answers: Optional[Dict]) -> int:
    if not answers:
        return 0
    return sum(1 for a in answers.values() if a is not None)


def remaining_quota(limit: Optional[int], used: int) -> Optional[int]:
    """Questions left today (never negative), or None when the user has no limit."""
    if limit is None:
        return None
    return max(0, limit - (used or 0))


def grade_answers(questions: Sequence, answers: Dict[str, Optional[str]]) -> List[dict]:
    """Compare decoded answers (original labels) with each question's key.

    Returns one result per question in `questions` order.
    """
    results = []
    for q in questions:
        given = answers.get(str(q.id))
        results.append({
            'question_id': q.id,
            'question': q.question,
            'user_answer': given,
            'correct_answer': q.correct_answer,
            'explanation': q.explanation,
            'is_correct': given is not None and given == q.correct_answer,
        })
    return results


def compute_metrics(
    correct: int,
    daily_limit: Optional[int],
    cumulative_correct: int,
    cumulative_answered: int,
    pool_size: int,
    readiness_threshold: float,
) -> dict:
    """Derive the three percentages plus the primary score and readiness flag."""
    main_score = percentage(correct, daily_limit) if daily_limit is not None else None
    attempt_overview = percentage(cumulative_correct, cumulative_answered)
    overall_result = percentage(correct, pool_size)
    primary = main_score if main_score is not None else attempt_overview
    score = round(min(max(primary, 0.0), 100.0), 2)
    return {
        'score': score,
        'main_score': main_score,
        'attempt_overview': attempt_overview,
        'overall_result': overall_result,
        'is_ready': primary >= readiness_threshold,
    }
