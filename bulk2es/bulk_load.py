"""Bulk load NDJSON files from a directory tree into Elasticsearch."""
import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from bulk2es.config import Config, load_config
from bulk2es.create_indices import initialize_index
from bulk2es.errors import Bulk2EsError, FileError, RunError
from bulk2es.es_client import SinkClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Config], SinkClient]


@dataclass
class FileResult:
    """Outcome of loading one input file."""

    path: str
    documents_read: int = 0
    documents_sent: int = 0
    chunks_sent: int = 0
    item_errors: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunSummary:
    """Per-file results of one run."""

    files: List[FileResult] = field(default_factory=list)

    @property
    def failed_files(self) -> List[str]:
        return [r.path for r in self.files if not r.ok]

    @property
    def documents_sent(self) -> int:
        return sum(r.documents_sent for r in self.files)

    @property
    def item_errors(self) -> int:
        return sum(r.item_errors for r in self.files)


class DocumentBuffer:
    """Ordered lines waiting to be sent, submitted in chunks of buffer_size.

    The buffer flushes itself once it holds buffer_size lines, so a worker
    keeps at most one chunk in memory. Chunks are sent one at a time.
    """

    def __init__(self, sink: SinkClient, buffer_size: int) -> None:
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        self.sink = sink
        self.buffer_size = buffer_size
        self.lines: List[str] = []
        self.documents_sent = 0
        self.chunks_sent = 0
        self.item_errors = 0

    def __len__(self) -> int:
        return len(self.lines)

    async def append(self, line: str) -> None:
        self.lines.append(line)
        if len(self.lines) >= self.buffer_size:
            await self.flush()

    async def flush(self) -> None:
        """Submit everything buffered, chunk by chunk, then clear."""
        if not self.lines:
            return
        for start in range(0, len(self.lines), self.buffer_size):
            chunk = self.lines[start:start + self.buffer_size]
            self.item_errors += await self.sink.submit_chunk(chunk)
            self.chunks_sent += 1
            self.documents_sent += len(chunk)
        self.lines.clear()

    async def close(self) -> None:
        await self.flush()


def _strip_newline(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
        if line.endswith("\r"):
            line = line[:-1]
    return line


def read_lines(path: Union[str, Path]) -> Iterator[str]:
    """Yield the lines of a file without terminators. Undecodable lines are skipped."""
    try:
        f = open(path, "rb")
    except OSError as e:
        raise FileError(f"Can not open file. {path}: {e}") from e
    with f:
        for lineno, raw in enumerate(f, start=1):
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                logger.warning("Can not read line. %s:%d %s", path, lineno, e)
                continue
            yield _strip_newline(line)


def find_files(input_dir: Union[str, Path]) -> List[Path]:
    """All files matching <input_dir>/**/*.json, sorted."""
    root = Path(input_dir)
    if not root.is_dir():
        raise RunError(f"input directory is not found. {root}")
    # Path.glob is case-insensitive on some platforms
    return sorted(p for p in root.glob("**/*.json") if p.is_file() and p.name.endswith(".json"))


async def _load_file(path: Path, config: Config, client_factory: ClientFactory, result: FileResult) -> None:
    sink = client_factory(config)
    buffer = DocumentBuffer(sink, config.buffer_size)
    try:
        for line in read_lines(path):
            result.documents_read += 1
            await buffer.append(line)
        await buffer.close()
    finally:
        result.documents_sent = buffer.documents_sent
        result.chunks_sent = buffer.chunks_sent
        result.item_errors = buffer.item_errors
        await sink.close()


def load_file(path: Union[str, Path], config: Config, client_factory: ClientFactory = SinkClient) -> FileResult:
    """Worker: send one file on a private event loop. Failures are recorded, not raised."""
    path = Path(path)
    result = FileResult(path=str(path))
    logger.info("Reading %s", path)
    try:
        asyncio.run(_load_file(path, config, client_factory, result))
    except Bulk2EsError as e:
        result.error = str(e)
        logger.warning("Failed loading %s. %s", path, e)
        return result
    logger.info("Finish: %s (%d documents)", path, result.documents_sent)
    return result


def run(
    input_dir: Union[str, Path],
    config_path: Union[str, Path],
    workers: Optional[int] = None,
    client_factory: ClientFactory = SinkClient,
) -> RunSummary:
    """Load config, bootstrap the index, then load every file in parallel.

    Config, schema and initialization errors propagate. Worker failures are
    logged and collected in the returned summary.
    """
    config = load_config(config_path)
    initialize_index(config, client_factory)

    files = find_files(input_dir)
    summary = RunSummary()
    if not files:
        logger.info("No *.json files in %s", input_dir)
        return summary

    max_workers = workers or os.cpu_count() or 1
    logger.info("Loading %d files with %d workers", len(files), max_workers)
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bulk2es") as executor:
        futures = {executor.submit(load_file, path, config, client_factory): path for path in files}
        for future in as_completed(futures):
            path = futures[future]
            try:
                summary.files.append(future.result())
            except Exception as e:
                logger.warning("Worker for %s failed. %s", path, e, exc_info=True)
                summary.files.append(FileResult(path=str(path), error=str(e)))

    logger.info(
        "Loaded %d files: %d documents sent, %d item errors, %d files failed",
        len(summary.files),
        summary.documents_sent,
        summary.item_errors,
        len(summary.failed_files),
    )
    return summary
