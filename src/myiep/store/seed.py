"""
Built-in demo content.

Written on first access when a collection has never been persisted so a new
install opens with something to look at.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from myiep.core.schemas import GoalStatus, WidgetType

DEFAULT_WIDGETS: list[str] = [WidgetType.TRACKER.value, WidgetType.STUDENTS.value]


def avatar_url(name: str, *, background: str = "random", color: str | None = None) -> str:
    """Generated initials avatar used when no photo is attached."""
    url = f"https://ui-avatars.com/api/?name={quote(name)}&background={background}"
    if color:
        url += f"&color={color}"
    return url


def demo_students() -> list[dict[str, Any]]:
    return [
        {
            "id": "1",
            "name": "Minjun Kim",
            "photo_reference": avatar_url("Minjun Kim", background="FFEDD5", color="C2410C"),
        },
        {
            "id": "2",
            "name": "Seoyeon Lee",
            "photo_reference": avatar_url("Seoyeon Lee", background="E0F2FE", color="0369A1"),
        },
    ]


def demo_goals() -> list[dict[str, Any]]:
    return [
        {
            "id": "g1",
            "student_id": "1",
            "title": "Respond to own name",
            "description": "Makes eye contact or answers 'yes' when the teacher calls their name.",
            "icon": "communication",
            "status": GoalStatus.IN_PROGRESS.value,
        },
        {
            "id": "g2",
            "student_id": "1",
            "title": "Request objects ('please give me')",
            "description": "Looks at a wanted object and requests it with a gesture and 'please'.",
            "icon": "social",
            "status": GoalStatus.IN_PROGRESS.value,
        },
        {
            "id": "g4",
            "student_id": "2",
            "title": "Six-step handwashing",
            "description": "Follows all six handwashing steps before meals.",
            "icon": "self_care",
            "status": GoalStatus.COMPLETED.value,
        },
        {
            "id": "g5",
            "student_id": "2",
            "title": "Toileting routine",
            "description": "Flushes after dressing when finished in the restroom.",
            "icon": "self_care",
            "status": GoalStatus.IN_PROGRESS.value,
        },
    ]


def demo_assessments() -> list[dict[str, Any]]:
    return [
        {
            "id": "a1",
            "title": "Present levels of performance (ages 6-8)",
            "items": [
                {
                    "id": "i1",
                    "text": "Arranges information in a logical sequence",
                    "status": "neutral",
                },
                {
                    "id": "i2",
                    "text": "Sentence length is age-appropriate",
                    "status": "bad",
                },
                {
                    "id": "i3",
                    "text": "Establishes and maintains eye contact",
                    "status": "good",
                },
            ],
        }
    ]
