"""
Inspection service: runs resolve -> connect -> decode for one or many hosts.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..models.inspection import InspectionResult
from ..security.errors import InspectionError
from .decoder_service import decode
from .handshake_service import HandshakeService
from .logging_service import PerformanceMonitor
from .report_service import ReportService
from .resolver_service import resolve


@dataclass(frozen=True)
class InspectionRequest:
    """One host to inspect."""
    identity: str
    address_override: Optional[str] = None
    port: int = 443


class InspectionService:
    """Orchestrates the inspection pipeline."""

    def __init__(self, handshake_service: HandshakeService,
                 report_service: Optional[ReportService] = None,
                 performance_monitor: Optional[PerformanceMonitor] = None,
                 max_workers: int = 4):
        """
        Initialize the inspection service.

        Args:
            handshake_service: Performs dial and handshake
            report_service: When given, single-host inspections stream their
                report as each stage completes
            performance_monitor: Optional stage timer
            max_workers: Thread pool size for inspect_many
        """
        self.handshake_service = handshake_service
        self.report_service = report_service
        self.performance_monitor = performance_monitor
        self.max_workers = max_workers
        self.logger = logging.getLogger(__name__)

    def _measure(self, operation: str, identity: str):
        if self.performance_monitor is None:
            return nullcontext()
        return self.performance_monitor.measure_operation(operation, identity)

    def inspect(self, request: InspectionRequest,
                cancel_event: Optional[threading.Event] = None,
                stream_report: bool = False) -> InspectionResult:
        """
        Run the pipeline for one host.

        Terminal failures are captured in the result rather than raised, so a
        caller inspecting several hosts sees every outcome.

        Args:
            request: Host, optional dial override and port
            cancel_event: Optional cancellation signal for dial and handshake
            stream_report: Print the header before dialing and the rest as it
                becomes available (requires a report service)

        Returns:
            InspectionResult
        """
        result = InspectionResult(identity_input=request.identity)
        reporter = self.report_service if stream_report else None

        try:
            with self._measure("resolve", request.identity):
                result.target = resolve(request.identity, request.address_override, request.port)

            if reporter:
                reporter.render_header(result.target)

            with self._measure("connect", request.identity):
                result.chain = self.handshake_service.connect(
                    result.target, cancel_event,
                    on_connected=reporter.render_tcp_connected if reporter else None
                )

            if reporter:
                reporter.render_session(result.chain)

            with self._measure("decode", request.identity):
                result.decoded = decode(result.chain)

            if reporter:
                reporter.render_decoded(result.decoded)

        except InspectionError as e:
            self.logger.info(f"Inspection of {request.identity} stopped at {e.stage}: {e.message}")
            result.error = e
            if reporter:
                reporter.render_error(e)

        return result

    def inspect_many(self, requests: Sequence[InspectionRequest],
                     cancel_event: Optional[threading.Event] = None) -> List[InspectionResult]:
        """
        Inspect several hosts concurrently.

        Pipelines share only the read-only trust anchors. Results come back in
        the order of the requests.
        """
        if not requests:
            return []

        workers = max(1, min(self.max_workers, len(requests)))
        self.logger.info(f"Inspecting {len(requests)} hosts with {workers} workers")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.inspect, request, cancel_event) for request in requests]
            return [future.result() for future in futures]
