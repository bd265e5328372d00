"""
Concurrent page acquisition from the network and disk sources.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable

from .errors import SourceFailure
from .pages import ChapterInfo, Origin, PageStore, Volume
from .progress import ProgressSink

logger = logging.getLogger(__name__)

# retrieve(chapters, progress) -> PageStore, raising on failure
PageRetriever = Callable[[list[ChapterInfo], ProgressSink], PageStore]


class PageMerger:
    """Fetches a volume's network and disk chapters in parallel.

    Both retrieval tasks always run to completion. Because the failure of
    either source invalidates the whole volume, results are buffered and
    only merged once both tasks have finished. When both fail, the network
    error is reported so the message does not depend on timing.
    """

    def __init__(self, network: PageRetriever, disk: PageRetriever) -> None:
        self.network = network
        self.disk = disk

    def merge(self, volume: Volume, progress: ProgressSink) -> PageStore:
        """Retrieve every page of a volume.

        Args:
            volume: Volume whose chapters should be fetched
            progress: Shared progress sink, fed by both tasks

        Returns:
            Network pages followed by disk pages

        Raises:
            SourceFailure: If either retrieval task failed
        """
        network_chapters = volume.chapters_from(Origin.NETWORK)
        disk_chapters = volume.chapters_from(Origin.DISK)

        logger.debug(
            f"Volume {volume.identifier}: {len(network_chapters)} network, "
            f"{len(disk_chapters)} disk chapters"
        )

        with ThreadPoolExecutor(max_workers=2) as executor:
            network_future = self._submit(executor, self.network, network_chapters, progress)
            disk_future = self._submit(executor, self.disk, disk_chapters, progress)
        # Leaving the executor block waits for both tasks

        network_error = _exception(network_future)
        disk_error = _exception(disk_future)

        if network_error is not None or disk_error is not None:
            progress.cancel("Error")
            if network_error is not None:
                if disk_error is not None:
                    logger.debug(f"Disk source also failed: {disk_error}")
                raise SourceFailure("network", network_error) from network_error
            raise SourceFailure("disk", disk_error) from disk_error

        merged = PageStore.concat(_result(network_future), _result(disk_future))
        progress.done()
        return merged

    @staticmethod
    def _submit(
        executor: ThreadPoolExecutor,
        retrieve: PageRetriever,
        chapters: list[ChapterInfo],
        progress: ProgressSink,
    ) -> Future | None:
        if not chapters:
            return None
        return executor.submit(retrieve, chapters, progress)


def _exception(future: Future | None) -> BaseException | None:
    return None if future is None else future.exception()


def _result(future: Future | None) -> PageStore:
    return PageStore() if future is None else future.result()
