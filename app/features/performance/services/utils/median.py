"""
Median reduction of repeated measurement runs.

Synthetic page-speed tests are noisy; each (page type, device type) group of
runs is reduced to one representative vector by taking the median of every
metric independently.
"""
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.features.performance.schemas.metrics import METRIC_FIELDS

# Persisted as integers on the median row
INTEGER_FIELDS = ("performance", "page_weight", "request_count")

GroupKey = Tuple[str, str]


def median(values: Iterable[Optional[float]]) -> Optional[float]:
    """
    Standard median of the present values.

    Absent values are dropped; returns None when nothing is left. Even counts
    return the mean of the two middle values (not nearest-rank).
    """
    present = sorted(v for v in values if v is not None)

    if not present:
        return None
    if len(present) == 1:
        return present[0]

    mid = len(present) // 2
    if len(present) % 2 == 0:
        return (present[mid - 1] + present[mid]) / 2
    return present[mid]


def aggregate(runs: Sequence[Any]) -> Dict[str, Optional[float]]:
    """
    Median of each metric field across `runs`.

    Fields are reduced independently, so a run missing one field still counts
    towards every other field. An empty input yields an all-None result.
    """
    return {
        field: median(getattr(run, field, None) for run in runs)
        for field in METRIC_FIELDS
    }


def group_runs(runs: Iterable[Any]) -> Dict[GroupKey, List[Any]]:
    """
    Partition runs by (page_type, device_type).

    Groups appear in first-seen order; each group is ordered by run number.
    """
    grouped: "OrderedDict[GroupKey, List[Any]]" = OrderedDict()
    for run in runs:
        key = (_plain(run.page_type), _plain(run.device_type))
        grouped.setdefault(key, []).append(run)

    for key, members in grouped.items():
        grouped[key] = sorted(members, key=lambda r: r.run_number)
    return dict(grouped)


def round_for_storage(fields: Dict[str, Optional[float]]) -> Dict[str, Optional[float]]:
    """Round score-like fields to integers, leaving absent values absent."""
    rounded = dict(fields)
    for field in INTEGER_FIELDS:
        if rounded.get(field) is not None:
            rounded[field] = int(round(rounded[field]))
    return rounded


def _plain(value: Any) -> str:
    return getattr(value, "value", value)
