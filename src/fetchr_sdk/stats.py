"""Per-call metadata and stats capture."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from .exceptions import FetchrError
from .results import Result, Success

if TYPE_CHECKING:
    from .request import Request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestStats:
    resource: str
    operation: str
    params: Mapping[str, Any]
    status_code: int
    err: FetchrError | None
    time: float


class MetaStatsCollector:
    """Record the terminal outcome of a request exactly once."""

    def __init__(self) -> None:
        self._captured = False

    @property
    def captured(self) -> bool:
        return self._captured

    def capture(self, request: "Request", result: Result, error: FetchrError | None = None) -> None:
        if self._captured:
            return
        self._captured = True

        options = request.options
        if result.meta is not None:
            options.service_meta.append(result.meta)

        if options.stats_collector is None:
            return
        stats = RequestStats(
            resource=request.resource,
            operation=request.operation,
            params=dict(request.call_params),
            status_code=200 if isinstance(result, Success) else result.status_code,
            err=error,
            time=(time.monotonic() - request.start_time) * 1000.0,
        )
        try:
            options.stats_collector(stats)
        except Exception:
            logger.exception("stats collector failed for %s.%s", request.resource, request.operation)
