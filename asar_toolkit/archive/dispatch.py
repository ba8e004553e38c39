"""Background dispatch of archive codec work.

Parsing, extraction and rebuilding are pure functions over immutable bytes,
so they can run on worker threads while the owner of an overlay keeps
serving reads. Requests are identified by a numeric id assigned at submit
time; results are collected by id in any order, and a request can be
discarded so that a late result never reaches its caller.
"""

import itertools
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import DispatchError
from .header import FileDescriptor, parse_header
from .patch import patch_package
from .reader import Buffer, extract_file, extract_files
from .writer import FileContent

logger = logging.getLogger(__name__)


class DispatchOp(Enum):
    PARSE_HEADER = "parseHeader"
    EXTRACT_ONE = "extractFile"
    EXTRACT_MANY = "extractFiles"
    MODIFY = "modifyPackage"


@dataclass
class ParsedHeader:
    """Flat listing returned by a PARSE_HEADER request."""

    files: List[FileDescriptor]
    files_offset: int


def run_request(op: DispatchOp, data: bytes, payload: Mapping[str, Any]) -> Any:
    """Execute one request synchronously. Runs on a worker thread."""
    if op is DispatchOp.PARSE_HEADER:
        header = parse_header(data)
        return ParsedHeader(files=header.descriptors(), files_offset=header.files_offset)
    if op is DispatchOp.EXTRACT_ONE:
        return extract_file(data, payload["path"])
    if op is DispatchOp.EXTRACT_MANY:
        return extract_files(data, payload["paths"], max_workers=1)
    if op is DispatchOp.MODIFY:
        return patch_package(
            data,
            modifications=payload.get("modifications"),
            deletions=payload.get("deletions", ()),
            max_workers=1,
        )
    raise ValueError(f"Unknown dispatch operation: {op!r}")


class ArchiveDispatcher:
    """Thread pool front end for archive requests."""

    def __init__(self, max_workers: Optional[int] = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="asar-dispatch"
        )
        self._ids = itertools.count(1)
        self._pending: Dict[int, "Future[Any]"] = {}

    def __enter__(self) -> "ArchiveDispatcher":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def submit(self, op: DispatchOp, data: Buffer, **payload: Any) -> int:
        """Queue a request and return its id."""
        request_id = next(self._ids)
        # Workers get their own immutable copy of mutable buffers
        if not isinstance(data, bytes):
            data = bytes(data)
        self._pending[request_id] = self._executor.submit(run_request, op, data, payload)
        logger.debug("Submitted request %d (%s)", request_id, op.value)
        return request_id

    def done(self, request_id: int) -> bool:
        future = self._pending.get(request_id)
        return future is not None and future.done()

    def pending(self) -> List[int]:
        return list(self._pending)

    def result(self, request_id: int, timeout: Optional[float] = None) -> Any:
        """Wait for a request and return its value.

        Failures are raised as DispatchError tagged with the request id. A
        timed-out request stays pending and can be collected later.
        """
        future = self._pending.get(request_id)
        if future is None:
            raise DispatchError(request_id, f"Unknown or discarded request: {request_id}")
        try:
            value = future.result(timeout)
        except FutureTimeoutError:
            raise
        except Exception as e:
            self._pending.pop(request_id, None)
            logger.debug("Request %d failed: %s", request_id, e)
            raise DispatchError(request_id, str(e)) from e
        self._pending.pop(request_id, None)
        return value

    def discard(self, request_id: int) -> bool:
        """Abandon a request; its result, if any arrives, is dropped."""
        future = self._pending.pop(request_id, None)
        if future is None:
            return False
        future.cancel()
        logger.debug("Discarded request %d", request_id)
        return True

    def shutdown(self, wait: bool = True) -> None:
        for request_id in list(self._pending):
            self.discard(request_id)
        self._executor.shutdown(wait=wait, cancel_futures=True)

    # Request/response helpers

    def parse_header(self, data: Buffer) -> ParsedHeader:
        return self.result(self.submit(DispatchOp.PARSE_HEADER, data))

    def extract_one(self, data: Buffer, path: str) -> bytes:
        return self.result(self.submit(DispatchOp.EXTRACT_ONE, data, path=path))

    def extract_many(self, data: Buffer, paths: Iterable[str]) -> Dict[str, bytes]:
        return self.result(self.submit(DispatchOp.EXTRACT_MANY, data, paths=list(paths)))

    def modify(
        self,
        data: Buffer,
        modifications: Mapping[str, FileContent],
        deletions: Iterable[str] = (),
    ) -> bytes:
        return self.result(
            self.submit(
                DispatchOp.MODIFY,
                data,
                modifications=dict(modifications),
                deletions=list(deletions),
            )
        )
