"""
Topic progress arithmetic - pure functions, no DB access.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Optional

COMPLETE = 100


def merge_milestone_progress(
    existing: Sequence[dict[str, Any]],
    topic_milestone_ids: Sequence[str],
    completed_ids: Iterable[str],
    now: datetime,
) -> tuple[list[dict[str, Any]], list[str]]:
    """
    Mark milestones as completed.

    Keeps one entry per topic milestone, preserving earlier completion
    timestamps. Ids that aren't milestones of the topic are ignored.

    Returns:
        (new milestone_progress list, ids completed by this call)
    """
    by_id = {entry["milestone_id"]: dict(entry) for entry in existing}
    newly_completed: list[str] = []
    requested = set(completed_ids)

    for milestone_id in topic_milestone_ids:
        entry = by_id.setdefault(
            milestone_id,
            {"milestone_id": milestone_id, "completed": False, "completed_at": None},
        )
        if milestone_id in requested and not entry["completed"]:
            entry["completed"] = True
            entry["completed_at"] = now.isoformat()
            newly_completed.append(milestone_id)

    ordered = [by_id[mid] for mid in topic_milestone_ids]
    # Entries for milestones removed from the topic are kept for history
    ordered.extend(v for k, v in by_id.items() if k not in set(topic_milestone_ids))
    return ordered, newly_completed


def calculate_progress(
    topic_milestone_ids: Sequence[str],
    milestone_progress: Sequence[dict[str, Any]],
    previous: int,
    supplied: Optional[int] = None,
) -> int:
    """
    Progress percentage for a user on a topic.

    Topics with milestones derive progress from the share of completed
    milestones. Topics without milestones take the progress value supplied
    by the caller. Progress never decreases and is capped at 100.
    """
    if topic_milestone_ids:
        wanted = set(topic_milestone_ids)
        done = sum(
            1
            for entry in milestone_progress
            if entry.get("completed") and entry.get("milestone_id") in wanted
        )
        derived = int(done / len(topic_milestone_ids) * 100 + 0.5)
    else:
        derived = supplied if supplied is not None else previous
    return max(0, min(COMPLETE, max(previous, derived)))



def topic_milestone_ids(milestones: Iterable[dict[str, Any]]) -> list[str]:
    """
    Ids of a topic's milestones, in topic order.

    A milestone is identified by "id", falling back to "_id". Entries with
    neither are skipped so they can't collapse into one shared entry.
    """
    ids: list[str] = []
    for milestone in milestones:
        milestone_id = milestone.get("id", milestone.get("_id"))
        if milestone_id is not None:
            ids.append(str(milestone_id))
    return ids
