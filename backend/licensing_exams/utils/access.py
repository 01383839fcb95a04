"""Exam visibility rules.

A grant names an exam plus any combination of a user, a profession and a
health authority. These helpers decide whether a grant (or a list of
grants) lets a given profile see the exam.
"""

from typing import Iterable

from ..models import ExamAccess, UserProfile, UserRole


def grant_applies(grant: ExamAccess, user: UserProfile) -> bool:
    """Return True if `grant` makes its exam visible to `user`.

    A grant naming the user always applies. Otherwise a grant naming only a
    profession (or only a health authority) applies when it matches the
    profile, and a grant naming both applies only when both match.
    """
    if grant.user_id is not None and grant.user_id == user.id:
        return True
    profession_match = grant.profession_id is not None and grant.profession_id == user.profession_id
    authority_match = grant.health_authority_id is not None and grant.health_authority_id == user.health_authority_id
    if grant.profession_id is not None and grant.health_authority_id is not None:
        return profession_match and authority_match
    return profession_match or authority_match


def accessible_exam_ids(grants: Iterable[ExamAccess], user: UserProfile) -> set:
    """Collect the exam ids made visible to `user` by `grants`."""
    return {g.exam_id for g in grants if grant_applies(g, user)}


def is_admin(user: UserProfile) -> bool:
    return user.role == UserRole.ADMIN
