import asyncio
from collections.abc import Awaitable, Callable, Sequence
from logging import Logger

from fastmcp.utilities.logging import get_logger

from repo_ingest_mcp.models.files import BatchFetchReport, FetchFailure, FetchOutcome, FetchSuccess, RetainedFile

DEFAULT_BATCH_SIZE = 100

ReadFile = Callable[[str], Awaitable[RetainedFile | None]]


def partition[T](items: Sequence[T], size: int) -> list[Sequence[T]]:
    """Split the items into consecutive chunks of at most `size` items."""

    if size < 1:
        msg = f"Batch size must be at least 1, got {size}"
        raise ValueError(msg)

    return [items[i : i + size] for i in range(0, len(items), size)]


async def _read_with_timeout(read: ReadFile, path: str, timeout: float | None) -> RetainedFile | None:
    if timeout is None:
        return await read(path)

    return await asyncio.wait_for(read(path), timeout=timeout)


def _to_outcome(path: str, result: RetainedFile | BaseException | None) -> FetchOutcome:
    if isinstance(result, TimeoutError):
        return FetchFailure(path=path, reason="Timed out reading the file")

    if isinstance(result, BaseException):
        return FetchFailure(path=path, reason=f"{type(result).__name__}: {result}")

    if result is None:
        return FetchFailure(path=path, reason="The file has no decodable content")

    return FetchSuccess(path=path, file=result)


async def fetch_in_batches(
    paths: Sequence[str],
    read: ReadFile,
    batch_size: int = DEFAULT_BATCH_SIZE,
    read_timeout: float | None = None,
    logger: Logger | None = None,
) -> BatchFetchReport:
    """Read the files in sequential batches, reading every file of a batch concurrently.

    A batch only starts once every read of the previous batch has settled. A read that raises, times out, or
    returns `None` is recorded as a failure and does not affect the other reads.

    Args:
        paths: The paths to read, in discovery order.
        read: The coroutine function that reads a single path.
        batch_size: The maximum number of reads in flight at once.
        read_timeout: The number of seconds to wait for a single read. If not provided, reads are not timed out.
    """

    log: Logger = logger or get_logger(__name__)
    batches = partition(paths, batch_size)
    outcomes: list[FetchOutcome] = []
    downloaded = 0

    for batch in batches:
        results: list[RetainedFile | BaseException | None] = await asyncio.gather(
            *[_read_with_timeout(read=read, path=path, timeout=read_timeout) for path in batch], return_exceptions=True
        )

        batch_outcomes = [_to_outcome(path, result) for path, result in zip(batch, results, strict=True)]

        outcomes.extend(batch_outcomes)
        downloaded += sum(1 for outcome in batch_outcomes if isinstance(outcome, FetchSuccess))

        log.info(f"Downloaded {downloaded}/{len(paths)} files")

    report = BatchFetchReport(outcomes=outcomes, batch_count=len(batches))

    if failures := report.failures:
        log.info(f"Skipped {len(failures)} of {len(paths)} files that could not be read")

    return report
