import random
from types import SimpleNamespace

import pytest

from licensing_exams.utils import scoring
from licensing_exams.utils.shuffle import (
    OPTION_LABELS,
    decode_answer,
    encode_answer,
    position_of,
    serialize_mapping,
    shuffle_options,
    shuffle_questions,
)


def _question(qid=1, correct='B'):
    return SimpleNamespace(
        id=qid, question=f'Q{qid}', option_a='alpha', option_b='bravo', option_c='charlie', option_d='delta',
        correct_answer=correct, explanation=None,
    )


@pytest.mark.parametrize("seed", range(20))
def test_option_shuffle_round_trip(seed):
    shuffled = shuffle_options(_question(), random.Random(seed))
    for displayed in OPTION_LABELS:
        original = decode_answer(displayed, shuffled.position_to_label)
        assert encode_answer(original, shuffled.label_to_position) == displayed


def test_shuffled_texts_follow_the_mapping():
    q = _question()
    shuffled = shuffle_options(q, random.Random(7))
    assert sorted(shuffled.texts) == ['alpha', 'bravo', 'charlie', 'delta']
    for pos, label in shuffled.position_to_label.items():
        assert shuffled.texts[pos] == getattr(q, f'option_{label.lower()}')
        assert shuffled.label_to_position[label] == pos


def test_decode_accepts_json_string_keys():
    mapping = serialize_mapping({0: 'C', 1: 'A', 2: 'D', 3: 'B'})
    assert mapping == {'0': 'C', '1': 'A', '2': 'D', '3': 'B'}
    assert decode_answer('A', mapping) == 'C'
    assert decode_answer('d', mapping) == 'B'


def test_position_of_rejects_unknown_labels():
    assert position_of('C') == 2
    with pytest.raises(ValueError):
        position_of('E')
    with pytest.raises(ValueError):
        position_of(None)


def test_shuffle_questions_is_a_permutation_and_leaves_input_alone():
    items = list(range(50))
    out = shuffle_questions(items, random.Random(3))
    assert items == list(range(50))
    assert sorted(out) == items


def test_answered_ids_ignore_null_answers():
    attempts = [
        SimpleNamespace(answers={'1': 'A', '2': None}),
        SimpleNamespace(answers={'3': 'D'}),
        SimpleNamespace(answers=None),
    ]
    assert scoring.answered_question_ids(attempts) == {'1', '3'}


def test_percentage_and_remaining_quota():
    assert scoring.percentage(1, 4) == 25.0
    assert scoring.percentage(3, 0) == 0.0
    assert scoring.remaining_quota(None, 5) is None
    assert scoring.remaining_quota(10, 4) == 6
    # a limit lowered below today's usage leaves nothing, not a negative count
    assert scoring.remaining_quota(3, 5) == 0


def test_grade_answers_marks_skipped_as_wrong():
    questions = [_question(1, 'A'), _question(2, 'B'), _question(3, 'C')]
    results = scoring.grade_answers(questions, {'1': 'A', '2': 'C', '3': None})
    assert [r['is_correct'] for r in results] == [True, False, False]
    assert results[1]['user_answer'] == 'C'
    assert results[1]['correct_answer'] == 'B'


def test_metrics_prefer_main_score_when_limit_exists():
    m = scoring.compute_metrics(correct=3, daily_limit=10, cumulative_correct=5, cumulative_answered=8,
                                pool_size=20, readiness_threshold=80)
    assert m['main_score'] == 30.0
    assert m['attempt_overview'] == 62.5
    assert m['overall_result'] == 15.0
    assert m['score'] == 30.0
    assert m['is_ready'] is False


def test_metrics_fall_back_to_attempt_overview():
    m = scoring.compute_metrics(correct=4, daily_limit=None, cumulative_correct=9, cumulative_answered=10,
                                pool_size=4, readiness_threshold=80)
    assert m['main_score'] is None
    assert m['score'] == 90.0
    assert m['overall_result'] == 100.0
    assert m['is_ready'] is True


def test_metrics_with_zero_limit_do_not_divide_by_zero():
    m = scoring.compute_metrics(correct=0, daily_limit=0, cumulative_correct=0, cumulative_answered=0,
                                pool_size=0, readiness_threshold=80)
    assert m['main_score'] == 0.0
    assert m['score'] == 0.0
