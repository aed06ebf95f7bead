"""
Logging setup and per-stage timing for the TLS inspector.
"""
import json
import logging
import logging.handlers
import sys
import time
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, asdict
from contextlib import contextmanager
import threading

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE_MAX_BYTES = 2 * 1024 * 1024
LOG_FILE_BACKUPS = 3


@dataclass
class LogEntry:
    """One line of the JSON log file."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    function: str
    line_number: int
    thread_name: str
    identity: Optional[str] = None
    stage: Optional[str] = None
    extra_data: Optional[Dict[str, Any]] = None
    exception_info: Optional[Dict[str, Any]] = None


@dataclass
class StageTiming:
    """How long one pipeline stage took for one host."""
    stage: str
    identity: Optional[str]
    duration_ms: float
    started_at: str
    success: bool
    error_type: Optional[str] = None
    error_message: Optional[str] = None


class JSONFormatter(logging.Formatter):
    """Renders records as single-line JSON, lifting identity/stage from `extra`."""

    def format(self, record: logging.LogRecord) -> str:
        entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            function=record.funcName,
            line_number=record.lineno,
            thread_name=record.threadName,
            identity=getattr(record, 'identity', None),
            stage=getattr(record, 'stage', None),
            extra_data=getattr(record, 'extra_data', None)
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry.exception_info = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': traceback.format_exception(exc_type, exc_value, exc_tb)
            }

        return json.dumps(asdict(entry), default=str)


class PerformanceMonitor:
    """Records stage timings for every inspected host; safe across worker threads."""

    def __init__(self):
        self._timings: List[StageTiming] = []
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def measure_operation(self, stage: str, identity: Optional[str] = None):
        """
        Time the enclosed block as one stage of one host's pipeline.

        Exceptions are recorded on the timing and re-raised unchanged.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        start = time.perf_counter()
        error: Optional[BaseException] = None

        try:
            yield
        except Exception as e:
            error = e
            raise
        finally:
            timing = StageTiming(
                stage=stage,
                identity=identity,
                duration_ms=(time.perf_counter() - start) * 1000,
                started_at=started_at,
                success=error is None,
                error_type=type(error).__name__ if error is not None else None,
                error_message=str(error) if error is not None else None
            )
            with self._lock:
                self._timings.append(timing)

            self.logger.debug(
                f"{stage} for {identity or '-'} took {timing.duration_ms:.1f} ms",
                extra={'identity': identity, 'stage': stage,
                       'extra_data': {'duration_ms': timing.duration_ms, 'success': timing.success}}
            )

    def get_metrics(self, stage: Optional[str] = None) -> List[StageTiming]:
        with self._lock:
            timings = list(self._timings)
        if stage:
            timings = [t for t in timings if t.stage == stage]
        return timings

    def get_operation_stats(self, stage: str) -> Dict[str, Any]:
        """Aggregate the timings of one stage across hosts."""
        timings = self.get_metrics(stage)
        if not timings:
            return {}

        durations = [t.duration_ms for t in timings]
        failures = [t for t in timings if not t.success]
        return {
            'operation': stage,
            'total_calls': len(timings),
            'success_count': len(timings) - len(failures),
            'failure_count': len(failures),
            'avg_duration_ms': sum(durations) / len(durations),
            'min_duration_ms': min(durations),
            'max_duration_ms': max(durations),
            'failed_identities': sorted({t.identity for t in failures if t.identity})
        }


class LoggingService:
    """Configures process logging from the inspector configuration."""

    def __init__(self, config):
        self.config = config
        self.performance_monitor = PerformanceMonitor()
        self._configure_root_logger()
        self.logger = logging.getLogger(__name__)
        self.logger.debug(f"Logging configured at {self.config.log_level}")

    def _configure_root_logger(self):
        """Replace root handlers with a stderr console handler and an optional JSON file."""
        level = getattr(logging, self.config.log_level.upper(), logging.WARNING)
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.setLevel(level)

        # stdout carries the report
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console.setLevel(level)
        root.addHandler(console)

        if self.config.log_file_path:
            log_path = Path(self.config.log_file_path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS, encoding='utf-8'
            )
            file_handler.setFormatter(JSONFormatter())
            file_handler.setLevel(level)
            root.addHandler(file_handler)

    def measure_performance(self, stage: str, identity: Optional[str] = None):
        return self.performance_monitor.measure_operation(stage, identity)

    def get_performance_stats(self, stage: Optional[str] = None) -> Dict[str, Any]:
        """Stats for one stage, or a mapping of every recorded stage to its stats."""
        if stage:
            return self.performance_monitor.get_operation_stats(stage)
        stages = {t.stage for t in self.performance_monitor.get_metrics()}
        return {name: self.performance_monitor.get_operation_stats(name) for name in sorted(stages)}
