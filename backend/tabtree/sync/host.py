"""Host tab platform interface."""

from abc import ABC, abstractmethod

from tabtree.models import HostTab


class HostTabPlatform(ABC):
    """Source of truth for which tabs exist in a host window."""

    @abstractmethod
    async def query_tabs(self, window_id: int) -> list[HostTab]:
        """Full live enumeration of a window's tabs.

        Raises HostUnavailableError when the host cannot answer.
        """
        ...


class ReportedTabsPlatform(HostTabPlatform):
    """Host whose tab lists are pushed to us (over HTTP) rather than pulled.

    ``query_tabs`` answers from the most recent report for the window.
    """

    def __init__(self) -> None:
        self._reports: dict[int, list[HostTab]] = {}

    def report(self, window_id: int, tabs: list[HostTab]) -> None:
        self._reports[window_id] = sorted(tabs, key=lambda tab: tab.index)

    def forget(self, window_id: int) -> None:
        self._reports.pop(window_id, None)

    async def query_tabs(self, window_id: int) -> list[HostTab]:
        tabs = self._reports.get(window_id)
        if tabs is None:
            raise HostUnavailableError(window_id)
        return list(tabs)


class HostUnavailableError(Exception):
    def __init__(self, window_id: int) -> None:
        self.window_id = window_id
        super().__init__(f"Host did not report tabs for window {window_id}")
