from licensing_exams import models
from licensing_exams.utils.access import accessible_exam_ids, grant_applies, is_admin


def _user(**fields):
    base = dict(id=1, email='u@example.com', password_hash='x', full_name='U', profession_id=10, health_authority_id=20)
    base.update(fields)
    return models.UserProfile(**base)


def _grant(exam_id=1, **targets):
    return models.ExamAccess(exam_id=exam_id, **targets)


def test_user_grant_applies_regardless_of_profile():
    assert grant_applies(_grant(user_id=1), _user(profession_id=None, health_authority_id=None))
    assert not grant_applies(_grant(user_id=2), _user())


def test_single_target_grants():
    assert grant_applies(_grant(profession_id=10), _user())
    assert not grant_applies(_grant(profession_id=11), _user())
    assert grant_applies(_grant(health_authority_id=20), _user())
    assert not grant_applies(_grant(health_authority_id=21), _user())


def test_combined_grant_requires_both_matches():
    assert grant_applies(_grant(profession_id=10, health_authority_id=20), _user())
    assert not grant_applies(_grant(profession_id=10, health_authority_id=21), _user())
    assert not grant_applies(_grant(profession_id=11, health_authority_id=20), _user())


def test_profile_without_profession_never_matches_profession_grant():
    assert not grant_applies(_grant(profession_id=10), _user(profession_id=None))


def test_accessible_exam_ids_and_admin_flag():
    grants = [_grant(1, profession_id=10), _grant(2, profession_id=99), _grant(3, user_id=1)]
    assert accessible_exam_ids(grants, _user()) == {1, 3}
    assert is_admin(_user(role=models.UserRole.ADMIN))
    assert not is_admin(_user())
