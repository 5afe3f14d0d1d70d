from __future__ import annotations

from dataclasses import dataclass


# Name fragments that mark a stage as terminal-negative.
REJECTION_VOCABULARY: tuple[str, ...] = ("reject", "declined", "not selected")


@dataclass(frozen=True)
class StageTemplate:
    name: str
    is_mandatory: bool = False
    sub_stages: tuple[str, ...] = ()


# Funnel seeded for every new job, in position order.
DEFAULT_STAGES: tuple[StageTemplate, ...] = (
    StageTemplate("Queue"),
    StageTemplate("Applied"),
    StageTemplate("Screening", is_mandatory=True),
    StageTemplate("Shortlisted", is_mandatory=True),
    StageTemplate("Interview"),
    StageTemplate("Selected"),
    StageTemplate("Offer", is_mandatory=True),
    StageTemplate("Hired"),
    StageTemplate("Rejected", is_mandatory=True),
)


def clean_stage_name(raw: str | None) -> str | None:
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None


def stage_name_key(raw: str | None) -> str | None:
    """Case-insensitive lookup key for matching stage names (SLA configs)."""
    cleaned = clean_stage_name(raw)
    if cleaned is None:
        return None
    return cleaned.lower()


def is_rejection_stage_name(name: str | None) -> bool:
    key = stage_name_key(name)
    if key is None:
        return False
    return any(fragment in key for fragment in REJECTION_VOCABULARY)


def requires_comment_for(name: str | None, explicit: bool | None = None) -> bool:
    if explicit is not None:
        return explicit
    return is_rejection_stage_name(name)


def has_comment(comment: str | None) -> bool:
    return bool(comment and comment.strip())
