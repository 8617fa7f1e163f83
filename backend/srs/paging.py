"""Group paging and merge-on-write mark persistence.

Group records in a session log are keyed by page index, not traversal
order, so navigating back and forth rewrites the same record.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import datetime

from backend.models.records import Group, GroupWord, WordBankEntry


def total_groups(word_count: int, per_page: int) -> int:
    return math.ceil(word_count / per_page) if per_page > 0 else 0


def build_group(words: Sequence[WordBankEntry], index: int, per_page: int) -> list[WordBankEntry]:
    """Return the words on page ``index``."""
    start = index * per_page
    return list(words[start : start + per_page])


def group_id(index: int) -> str:
    return f"group_{index}"


def find_group(groups: Sequence[Group], index: int) -> Group | None:
    for group in groups:
        if group.index == index:
            return group
    return None


def merge_group_record(
    existing: Group | None,
    index: int,
    words: Sequence[WordBankEntry],
    marks: Mapping[str, bool],
    now: datetime,
) -> Group:
    """Derive a group record from the live mark map.

    Words that stay marked keep the ``marked_at`` from the previous record;
    newly marked words get ``now``; unmarked words have it cleared.
    """
    previous = {w.id: w for w in existing.words} if existing else {}
    group_words = []
    for word in words:
        marked = bool(marks.get(word.id, False))
        prior = previous.get(word.id)
        marked_at = ((prior.marked_at if prior else None) or now) if marked else None
        group_words.append(
            GroupWord(
                id=word.id,
                word=word.word,
                pinyin=word.pinyin,
                unit=word.unit,
                marked_wrong=marked,
                marked_at=marked_at,
            )
        )
    return Group(id=group_id(index), index=index, words=group_words)


def upsert_group(groups: list[Group], record: Group) -> None:
    """Replace the record with the same index in place, or append it."""
    for i, group in enumerate(groups):
        if group.index == record.index:
            groups[i] = record
            return
    groups.append(record)


def restore_marks(groups: Sequence[Group], index: int, words: Sequence[WordBankEntry]) -> dict[str, bool]:
    """Mark map for page ``index``: the persisted state if visited, else all clear."""
    stored = find_group(groups, index)
    if stored is not None:
        return {w.id: w.marked_wrong for w in stored.words}
    return {w.id: False for w in words}
