"""Learning level resolution and community room gating.

Students only see the room named after their exact level; there is no
hierarchy, so an intermediate student cannot read the beginner room.
Every other role reads every room.
"""
from typing import Optional, Union

from app.domain.principal import LearningLevel, Principal, Role

_NEXT_LEVEL = {
    LearningLevel.BEGINNER: LearningLevel.INTERMEDIATE,
    LearningLevel.INTERMEDIATE: LearningLevel.ADVANCED,
    LearningLevel.ADVANCED: None,
}

_LEVEL_RANK = {
    LearningLevel.BEGINNER: 1,
    LearningLevel.INTERMEDIATE: 2,
    LearningLevel.ADVANCED: 3,
}


def resolve_learning_level(principal: Principal) -> LearningLevel:
    """Return the level used for gating.

    Order: explicit ``learning_level``, then the onboarding
    ``trading_level``, then beginner.
    """
    if principal.learning_level is not None:
        return principal.learning_level
    details = principal.student_details
    if details is not None and details.trading_level is not None:
        return details.trading_level
    return LearningLevel.BEGINNER


def can_access_room(
    user_level: Optional[Union[LearningLevel, str]],
    room_label: str,
    role: Union[Role, str],
) -> bool:
    """Decide whether a user at ``user_level`` may enter the room ``room_label``.

    Args:
        user_level: The user's resolved learning level
        room_label: The room's level label, e.g. "Intermediate"
        role: The user's role

    Returns:
        True for any non-student role. For students, True only when the
        level equals the room label (label compared in lower case).
    """
    if Role(role) != Role.STUDENT:
        return True
    if user_level is None:
        return False
    level = LearningLevel(user_level).value
    return room_label.strip().lower() == level


def next_level(level: LearningLevel) -> Optional[LearningLevel]:
    """Level unlocked after completing ``level``; None at the top."""
    return _NEXT_LEVEL[level]


def level_exceeds(required: LearningLevel, available: LearningLevel) -> bool:
    """True if ``required`` sits above ``available`` in the level order."""
    return _LEVEL_RANK[required] > _LEVEL_RANK[available]


def has_completed_onboarding(principal: Principal) -> bool:
    """Students must finish onboarding before the community opens; other roles never onboard."""
    if principal.role != Role.STUDENT:
        return True
    details = principal.student_details
    return details is not None and details.onboarding_completed
