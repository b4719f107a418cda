"""Incremental guard: reprocess a topic only when it saw activity since the last run."""

from __future__ import annotations

from datetime import datetime


def needs_reprocessing(
    latest_activity: datetime | None, last_processed: datetime | None
) -> bool:
    """Decide whether a topic needs a fresh summary.

    ============================  ================  ======
    latest_activity               last_processed    result
    ============================  ================  ======
    None                          any               False
    set                           None              True
    set, later than processed     set               True
    set, equal or earlier         set               False
    ============================  ================  ======

    Equal timestamps count as current, so re-running over the same data
    never loops.
    """
    if latest_activity is None:
        return False
    if last_processed is None:
        return True
    return latest_activity > last_processed
