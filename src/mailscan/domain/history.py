"""Scan history projection - filtered, sorted views of stored scans."""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from .models import ScanRecord, ScanStatus

logger = logging.getLogger(__name__)


class HistorySort(str, Enum):
    """Sort orders for the history view."""

    NEWEST = "newest"
    OLDEST = "oldest"
    STATUS = "status"

    @property
    def label(self) -> str:
        return _SORT_LABELS[self]


class HistoryFilter(str, Enum):
    """Filters for the history view."""

    ALL = "all"
    PROCESSED = "processed"
    PENDING = "pending"  # pending or processing
    FAILED = "failed"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    def matches(self, record: ScanRecord) -> bool:
        if self == HistoryFilter.ALL:
            return True
        if self == HistoryFilter.PENDING:
            return record.status in (ScanStatus.PENDING, ScanStatus.PROCESSING)
        return record.status.value == self.value


_SORT_LABELS = {
    HistorySort.NEWEST: "Newest first",
    HistorySort.OLDEST: "Oldest first",
    HistorySort.STATUS: "By status",
}


@dataclass(frozen=True)
class HistoryView:
    """A projected history: the visible records plus the unfiltered total."""

    records: tuple[ScanRecord, ...]
    total: int
    sort: HistorySort
    filter: HistoryFilter

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records


def project_history(
    records: Iterable[ScanRecord],
    sort: HistorySort = HistorySort.NEWEST,
    filter: HistoryFilter = HistoryFilter.ALL,
) -> HistoryView:
    """Filter, then sort, a set of scans for display.

    Sorting is stable: records that compare equal keep their input order.
    Status order is pending < processing < processed < failed.
    """
    records = list(records)
    visible = [r for r in records if filter.matches(r)]

    if sort == HistorySort.NEWEST:
        ordered = sorted(visible, key=lambda r: r.created_at, reverse=True)
    elif sort == HistorySort.OLDEST:
        ordered = sorted(visible, key=lambda r: r.created_at)
    else:
        ordered = sorted(visible, key=lambda r: r.status.rank)

    return HistoryView(records=tuple(ordered), total=len(records), sort=sort, filter=filter)


class HistoryState:
    """Current sort/filter selection and the view derived from it.

    Observers are called with the new view after every recomputation.
    """

    def __init__(
        self,
        load: Callable[[], list[ScanRecord]],
        sort: HistorySort = HistorySort.NEWEST,
        filter: HistoryFilter = HistoryFilter.ALL,
    ) -> None:
        self._load = load
        self._records: list[ScanRecord] = []
        self._sort = sort
        self._filter = filter
        self._observers: list[Callable[[HistoryView], None]] = []
        self.view = project_history([], sort, filter)

    @property
    def sort(self) -> HistorySort:
        return self._sort

    @property
    def filter(self) -> HistoryFilter:
        return self._filter

    def subscribe(self, observer: Callable[[HistoryView], None]) -> Callable[[], None]:
        """Register an observer. Returns a function that unsubscribes it."""
        self._observers.append(observer)
        return lambda: self._observers.remove(observer)

    def reload(self) -> HistoryView:
        self._records = self._load()
        return self._recompute()

    def set_sort(self, sort: HistorySort) -> HistoryView:
        if sort != self._sort:
            self._sort = sort
            self._recompute()
        return self.view

    def set_filter(self, filter: HistoryFilter) -> HistoryView:
        if filter != self._filter:
            self._filter = filter
            self._recompute()
        return self.view

    def on_scans_changed(self, changed_ids: list[str]) -> None:
        """Poller callback: reload after records changed in the store."""
        logger.debug(f"History reload after {len(changed_ids)} changed scans")
        self.reload()

    def _recompute(self) -> HistoryView:
        self.view = project_history(self._records, self._sort, self._filter)
        for observer in list(self._observers):
            observer(self.view)
        return self.view
