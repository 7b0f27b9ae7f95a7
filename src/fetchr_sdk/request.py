"""A single CRUD call and its one in-flight execution."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import warnings
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Generator, Mapping

from .exceptions import (
    ErrorReason,
    FetchrError,
    FetchrStateError,
    FetchrValidationError,
    InvalidResourceError,
)
from .models import OPERATIONS
from .options import ClientOptions
from .request_options import RequestConfig
from .results import Failure, Result, Success
from .retry import RetryScheduler
from .security import check_resource_name
from .stats import MetaStatsCollector

logger = logging.getLogger(__name__)

Sender = Callable[["Request"], Awaitable[Result]]
Callback = Callable[[FetchrError | None, Any, Any], Any]

_ABORTED = object()
_MISSING = object()


class Request:
    """One fetcher call.

    Builder steps (``params``, ``body``, ``client_config``) return a new
    request and never touch one that is already sending. Every completion
    path (``await``, ``execute``, ``then``, ``catch``, ``end``) shares a
    single execution, so the transport is reached once per request no matter
    how many of them are used.
    """

    def __init__(
        self,
        operation: str,
        resource: str,
        options: ClientOptions,
        sender: Sender,
        *,
        params: Mapping[str, Any] | None = None,
        body: Any = None,
        config: RequestConfig | Mapping[str, Any] | None = None,
    ) -> None:
        if operation not in OPERATIONS:
            raise FetchrValidationError(f"Unknown operation: {operation!r}")
        if not resource or not isinstance(resource, str):
            raise InvalidResourceError("Resource is required for a fetcher request")
        check_resource_name(resource)

        self.operation = operation
        self.resource = resource
        self.options = options
        self.call_params: Mapping[str, Any] = MappingProxyType(dict(params or {}))
        self.call_body = body
        self.config = RequestConfig.coerce(config)
        self.start_time = 0.0

        self._sender = sender
        self._task: asyncio.Task[Result] | None = None
        self._abort_event = asyncio.Event()
        self._error: FetchrError | None = None
        self._collector = MetaStatsCollector()

    def __repr__(self) -> str:
        return f"<Request {self.operation} {self.resource} sent={self.sent}>"

    def _evolve(self, **changes: Any) -> "Request":
        values: dict[str, Any] = {"params": self.call_params, "body": self.call_body, "config": self.config}
        values.update(changes)
        return Request(self.operation, self.resource, self.options, self._sender, **values)

    def params(self, params: Mapping[str, Any] | None = None) -> "Request":
        return self._evolve(params=params)

    def body(self, body: Any = None) -> "Request":
        return self._evolve(body=body)

    def client_config(self, config: RequestConfig | Mapping[str, Any] | None = None) -> "Request":
        return self._evolve(config=config)

    @property
    def sent(self) -> bool:
        return self._task is not None

    def _send(self) -> "asyncio.Task[Result]":
        if self._task is None:
            self.start_time = time.monotonic()
            self._task = asyncio.ensure_future(self._run())
        return self._task

    async def execute(self) -> Result:
        """Run the call (once) and return its ``Success`` or ``Failure``."""
        return await asyncio.shield(self._send())

    def __await__(self) -> Generator[Any, None, Success]:
        return self._resolve().__await__()

    async def _resolve(self) -> Success:
        result = await self.execute()
        if isinstance(result, Failure):
            raise self._error_for(result)
        return result

    async def then(
        self,
        on_success: Callable[[Success], Any] | None = None,
        on_failure: Callable[[FetchrError], Any] | None = None,
    ) -> Any:
        try:
            result = await self
        except FetchrError as err:
            if on_failure is None:
                raise
            return on_failure(err)
        return on_success(result) if on_success is not None else result

    async def catch(self, on_failure: Callable[[FetchrError], Any]) -> Any:
        return await self.then(None, on_failure)

    def end(self, callback: Any = _MISSING) -> "asyncio.Task[Result]":
        """Send the request and call ``callback(error, data, meta)`` once it settles."""
        if callback is _MISSING:
            warnings.warn(
                "end() was called without a callback. This will become an error in the future. "
                "Await the request instead.",
                DeprecationWarning,
                stacklevel=2,
            )
            callback = None
        task = self._send()
        if callback is not None:
            task.add_done_callback(lambda done: self._notify(callback, done))
        return task

    def _notify(self, callback: Callback, task: "asyncio.Task[Result]") -> None:
        if task.cancelled():
            callback(Failure(ErrorReason.ABORT, message="Request cancelled", status_code=0).to_error(), None, None)
            return
        result = task.result()
        if isinstance(result, Success):
            callback(None, result.data, result.meta)
        else:
            callback(self._error_for(result), None, None)

    def abort(self) -> None:
        """Cancel the in-flight attempt and any pending retry."""
        if self._task is None:
            raise FetchrStateError("Cannot abort a request that has not been sent")
        if self._task.done():
            return
        self._abort_event.set()

    def _error_for(self, failure: Failure) -> FetchrError:
        if self._error is None:
            self._error = failure.to_error()
        return self._error

    async def _until_aborted(self, awaitable: Awaitable[Any]) -> Any:
        if self._abort_event.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return _ABORTED
        work = asyncio.ensure_future(awaitable)
        aborted = asyncio.ensure_future(self._abort_event.wait())
        try:
            await asyncio.wait({work, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            aborted.cancel()
            if not work.done():
                work.cancel()
        if work.done() and not work.cancelled():
            return work.result()
        return _ABORTED

    async def _run(self) -> Result:
        scheduler = RetryScheduler.for_request(self.operation, self.options, self.config)
        retries = 0
        while True:
            logger.debug("%s %s: attempt %d", self.operation, self.resource, retries + 1)
            try:
                outcome = await self._until_aborted(self._sender(self))
            except Exception as exc:
                logger.exception("%s %s: sender raised", self.operation, self.resource)
                outcome = Failure(
                    ErrorReason.UNKNOWN,
                    message=str(exc) or "Request failed",
                    status_code=0,
                    cause=exc,
                )
            if outcome is _ABORTED:
                result: Result = self._abort_failure()
                break
            if isinstance(outcome, Success) or not scheduler.should_retry(outcome, retries):
                result = outcome
                break

            retries += 1
            delay_ms = scheduler.delay_ms(retries)
            logger.info(
                "%s %s failed with %s (status %s), retry %d of %d in %.0f ms",
                self.operation,
                self.resource,
                outcome.reason.value,
                outcome.status_code,
                retries,
                scheduler.max_retries,
                delay_ms,
            )
            if await self._until_aborted(asyncio.sleep(delay_ms / 1000.0)) is _ABORTED:
                result = self._abort_failure()
                break

        error = self._error_for(result) if isinstance(result, Failure) else None
        self._collector.capture(self, result, error)
        return result

    def _abort_failure(self) -> Failure:
        logger.debug("%s %s: aborted", self.operation, self.resource)
        return Failure(ErrorReason.ABORT, message="Request aborted", status_code=0)
