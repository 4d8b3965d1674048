from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional

from .model import Clip

# Starts closer than this count as simultaneous for ordering.
TIE_EPSILON_SEC = 0.01
# Overlaps smaller than this are float noise and left alone.
OVERLAP_TOLERANCE_SEC = 0.001


def order_clips(clips: Iterable[Clip], active_id: Optional[str] = None) -> List[Clip]:
    """
    Sort clips by start, letting `active_id` win near-ties.

    The active clip is moved ahead of every clip directly before it whose
    start lies within TIE_EPSILON_SEC of the active clip's own start. Other
    ties keep their input order.
    """
    out = sorted(clips, key=lambda c: c.start_offset)
    if active_id is None:
        return out

    idx = next((i for i, c in enumerate(out) if c.id == active_id), None)
    if idx is None:
        return out

    active = out[idx]
    j = idx
    while j > 0 and abs(out[j - 1].start_offset - active.start_offset) < TIE_EPSILON_SEC:
        j -= 1
    if j != idx:
        out.pop(idx)
        out.insert(j, active)
    return out


def reflow(clips: Iterable[Clip], active_id: Optional[str] = None) -> List[Clip]:
    """
    Remove overlaps on one track by pushing later clips forward.

    Greedy forward compaction: gaps are preserved and clips are never pulled
    left. Repositioned clips are new values; untouched clips are returned as-is.
    """
    ordered = order_clips(clips, active_id)
    out: List[Clip] = []
    prev_end: Optional[float] = None
    for c in ordered:
        if prev_end is not None and c.start_offset < prev_end - OVERLAP_TOLERANCE_SEC:
            c = replace(c, start_offset=prev_end)
        out.append(c)
        prev_end = c.start_offset + c.duration
    return out


def has_overlaps(clips: Iterable[Clip]) -> bool:
    ordered = sorted(clips, key=lambda c: c.start_offset)
    for a, b in zip(ordered, ordered[1:]):
        if b.start_offset < a.end - OVERLAP_TOLERANCE_SEC:
            return True
    return False
