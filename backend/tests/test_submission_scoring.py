import pytest
from fastapi.testclient import TestClient

from licensing_exams.main import app
from conftest import correct_answers_for, wrong_answers_for

client = TestClient(app)


def _start(exam, user):
    r = client.get(f'/exams/{exam.id}/take', headers=user.headers)
    assert r.status_code == 200
    return r.json()


def _submit(exam_id, user, delivery_id, answers, **extra):
    return client.post(f'/exams/{exam_id}/submit', headers=user.headers,
                       json={'delivery_id': delivery_id, 'answers': answers, **extra})


@pytest.fixture
def candidate(make_user, grant):
    """Factory: a user granted the given exam directly."""
    def _make(exam, **fields):
        user = make_user(**fields)
        grant(exam.id, user_id=user.id)
        return user
    return _make


def test_all_correct_without_limit_scores_full_marks(make_exam, candidate):
    exam = make_exam(3)
    user = candidate(exam)
    delivery = _start(exam, user)
    r = _submit(exam.id, user, delivery['delivery_id'], correct_answers_for(delivery, exam), time_spent=95)
    assert r.status_code == 200
    body = r.json()
    assert body['correct_answers'] == 3
    assert body['total_questions'] == 3
    assert body['main_score'] is None
    assert body['score'] == 100.0
    assert body['is_ready'] is True
    assert body['attempt']['time_spent'] == 95
    assert body['attempt']['exam']['id'] == exam.id
    assert all(item['is_correct'] for item in body['results'])


def test_answers_are_decoded_through_the_shuffle(make_exam, candidate):
    exam = make_exam(4)
    user = candidate(exam)
    delivery = _start(exam, user)
    body = _submit(exam.id, user, delivery['delivery_id'], wrong_answers_for(delivery, exam)).json()
    assert body['correct_answers'] == 0
    assert body['score'] == 0.0
    for item in body['results']:
        assert item['user_answer'] != item['correct_answer']
        assert item['correct_answer'] == exam.questions[item['question_id']].correct


def test_daily_limit_drives_the_main_score(make_exam, candidate):
    exam = make_exam(4)
    user = candidate(exam, daily_mcq_limit=10)
    delivery = _start(exam, user)
    body = _submit(exam.id, user, delivery['delivery_id'], correct_answers_for(delivery, exam)).json()
    assert body['main_score'] == 40.0
    assert body['score'] == 40.0
    assert body['attempt_overview'] == 100.0
    assert body['overall_result'] == 100.0
    assert body['daily_limit'] == 10
    assert body['is_ready'] is False


def test_attempt_overview_accumulates_across_attempts(make_exam, candidate):
    exam = make_exam(4)
    user = candidate(exam)
    first = _start(exam, user)
    right = correct_answers_for(first, exam)
    wrong = wrong_answers_for(first, exam)
    ids = [str(q['id']) for q in first['questions']]
    answers = {ids[0]: right[ids[0]], ids[1]: right[ids[1]], ids[2]: wrong[ids[2]], ids[3]: None}
    body = _submit(exam.id, user, first['delivery_id'], answers).json()
    assert body['answered_count'] == 3
    assert body['score'] == 66.67
    assert body['attempt']['answers'][ids[3]] is None

    second = _start(exam, user)
    assert [str(q['id']) for q in second['questions']] == [ids[3]]
    body = _submit(exam.id, user, second['delivery_id'], correct_answers_for(second, exam)).json()
    assert body['cumulative_correct_answers'] == 3
    assert body['cumulative_answered_questions'] == 4
    assert body['score'] == 75.0
    assert body['overall_result'] == 25.0
    assert body['total_exam_questions'] == 4


def test_delivery_can_only_be_submitted_once(make_exam, candidate):
    exam = make_exam(2)
    user = candidate(exam)
    delivery = _start(exam, user)
    answers = correct_answers_for(delivery, exam)
    assert _submit(exam.id, user, delivery['delivery_id'], answers).status_code == 200
    assert _submit(exam.id, user, delivery['delivery_id'], answers).status_code == 409


def test_foreign_deliveries_and_questions_are_rejected(make_exam, candidate):
    exam = make_exam(2)
    owner = candidate(exam)
    intruder = candidate(exam)
    delivery = _start(exam, owner)
    answers = correct_answers_for(delivery, exam)
    assert _submit(exam.id, intruder, delivery['delivery_id'], answers).status_code == 404

    other = make_exam(1)
    assert _submit(other.id, owner, delivery['delivery_id'], answers).status_code == 404

    stray = {**answers, str(next(iter(other.questions))): 'A'}
    r = _submit(exam.id, owner, delivery['delivery_id'], stray)
    assert r.status_code == 400

    r = _submit(exam.id, owner, delivery['delivery_id'], {k: 'z' for k in answers})
    assert r.status_code == 422


def test_history_review_and_dashboard(make_exam, make_user, admin, grant):
    exam = make_exam(2)
    user = make_user(daily_mcq_limit=50)
    grant_id = grant(exam.id, user_id=user.id)
    delivery = _start(exam, user)
    attempt = _submit(exam.id, user, delivery['delivery_id'], correct_answers_for(delivery, exam)).json()['attempt']

    history = client.get('/attempts', headers=user.headers).json()
    assert [a['id'] for a in history] == [attempt['id']]
    stored = history[0]
    assert stored['main_score'] == pytest.approx(4.0)
    assert stored['attempt_overview'] == 100.0
    assert stored['overall_result'] == 100.0
    assert stored['cumulative_correct_answers'] == 2
    assert stored['cumulative_answered_questions'] == 2
    assert stored['total_exam_questions'] == 2
    assert stored['daily_limit'] == 50
    assert stored['is_ready'] is False
    assert client.get(f'/attempts?exam_id={exam.id}', headers=user.headers).json()[0]['exam']['title']

    # losing access to the exam keeps the attempt reviewable
    assert client.delete(f'/admin/exam-access/{grant_id}', headers=admin.headers).status_code == 200
    review = client.get(f"/attempts/{attempt['id']}", headers=user.headers)
    assert review.status_code == 200
    assert review.json()['main_score'] == pytest.approx(4.0)
    assert review.json()['overall_result'] == 100.0
    items = review.json()['review']
    assert len(items) == 2
    assert all(item['is_correct'] for item in items)
    assert {'option_a', 'option_b', 'option_c', 'option_d'} <= set(items[0])

    stranger = make_user()
    assert client.get(f"/attempts/{attempt['id']}", headers=stranger.headers).status_code == 404
    assert client.get(f"/attempts/{attempt['id']}", headers=admin.headers).status_code == 200

    dash = client.get('/dashboard', headers=user.headers).json()
    assert dash['user']['id'] == user.id
    assert dash['daily_usage'] == {'used': 2, 'limit': 50, 'remaining': 48}
    assert dash['recent_attempts'][0]['id'] == attempt['id']


def test_submit_rechecks_access_and_exam_state(make_exam, make_user, admin, grant):
    exam = make_exam(2)
    user = make_user()
    grant_id = grant(exam.id, user_id=user.id)
    delivery = _start(exam, user)
    assert client.delete(f'/admin/exam-access/{grant_id}', headers=admin.headers).status_code == 200
    r = _submit(exam.id, user, delivery['delivery_id'], correct_answers_for(delivery, exam))
    assert r.status_code == 403

    grant(exam.id, user_id=user.id)
    delivery = _start(exam, user)
    assert client.put(f'/admin/exams/{exam.id}', json={'is_active': False}, headers=admin.headers).status_code == 200
    r = _submit(exam.id, user, delivery['delivery_id'], correct_answers_for(delivery, exam))
    assert r.status_code == 404
    assert client.get('/attempts', headers=user.headers).json() == []


def test_dashboard_remaining_never_goes_negative(make_exam, candidate, admin):
    exam = make_exam(3)
    user = candidate(exam, daily_mcq_limit=5)
    delivery = _start(exam, user)
    assert _submit(exam.id, user, delivery['delivery_id'], correct_answers_for(delivery, exam)).status_code == 200

    r = client.put('/api/admin-users', headers=admin.headers, json={'id': user.id, 'dailyMcqLimit': 1})
    assert r.status_code == 200
    usage = client.get('/dashboard', headers=user.headers).json()['daily_usage']
    assert usage == {'used': 3, 'limit': 1, 'remaining': 0}
