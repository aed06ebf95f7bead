"""
Main application entry point for the TLS inspector.
Handles configuration, logging, service wiring and cancellation on signals.
"""

import argparse
import signal
import sys
import logging
import threading
from typing import Optional, Sequence

from . import __version__
from .models.config import Config, LOG_LEVELS
from .security.trust_anchors import TrustAnchorSet, load_trust_anchors
from .services.config_service import ConfigService
from .services.handshake_service import HandshakeService
from .services.inspection_service import InspectionRequest, InspectionService
from .services.logging_service import LoggingService
from .services.report_service import ReportService

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class InspectorApplication:
    """Wires configuration, trust anchors and services for one invocation."""

    def __init__(self, config_path: Optional[str] = None,
                 anchors: Optional[TrustAnchorSet] = None,
                 stdout=None, stderr=None):
        """
        Initialize the inspector application.

        Args:
            config_path: Optional configuration file; nothing is read without it
            anchors: Trust anchors to use instead of the bundled roots
            stdout: Stream for the report (defaults to sys.stdout)
            stderr: Stream for diagnostics (defaults to sys.stderr)
        """
        self.config_path = config_path
        self.anchors = anchors
        self.stdout = stdout
        self.stderr = stderr
        self.logger = logging.getLogger(__name__)
        self.config_service = None
        self.config: Optional[Config] = None
        self.logging_service = None
        self.report_service = None
        self.inspection_service = None

        self._cancel_event = threading.Event()
        self._previous_handlers = {}

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def _setup_signal_handlers(self):
        """Cancel in-flight handshakes on SIGINT/SIGTERM."""
        if threading.current_thread() is not threading.main_thread():
            return

        def signal_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            self.logger.info(f"Received {signal_name} signal, cancelling inspection...")
            self.shutdown()

        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, signal_handler)

    def _restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()

    def initialize(self, **overrides) -> bool:
        """
        Load configuration, set up logging and build the services.

        Args:
            **overrides: Config fields set from the command line (None = unset)

        Returns:
            True if initialization succeeded, False otherwise
        """
        try:
            self.config_service = ConfigService()
            config = self.config_service.get_config()
            if self.config_path:
                config = self.config_service.load_config(self.config_path)
            self.config = self.config_service.apply_overrides(config, **overrides)
        except (FileNotFoundError, ValueError) as e:
            self._write_error(f"Error: configuration failed: {e}")
            return False

        self.logging_service = LoggingService(self.config)

        if self.anchors is None:
            with self.logging_service.measure_performance("trust_anchors"):
                self.anchors = load_trust_anchors()
        self.logger.info(
            f"Using {len(self.anchors)} trust anchors from {self.anchors.source} {self.anchors.version}".rstrip()
        )

        self.report_service = ReportService(
            stream=self.stdout,
            verbose=self.config.verbose,
            show_trust=self.config.verification_mode == "report",
            error_stream=self.stderr
        )
        handshake_service = HandshakeService(
            self.anchors,
            timeout=self.config.timeout_seconds,
            verification_mode=self.config.verification_mode
        )
        self.inspection_service = InspectionService(
            handshake_service,
            report_service=self.report_service,
            performance_monitor=self.logging_service.performance_monitor,
            max_workers=self.config.max_workers
        )
        return True

    def run(self, hosts: Sequence[str], address_override: Optional[str] = None,
            port: Optional[int] = None) -> int:
        """
        Inspect the given hosts and print the report.

        Returns:
            Process exit code
        """
        if self.inspection_service is None:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        port = port if port is not None else self.config.default_port
        requests = [InspectionRequest(identity=host, address_override=address_override, port=port)
                    for host in hosts]

        self._setup_signal_handlers()
        try:
            if len(requests) == 1 and self.config.output_format == "text":
                results = [self.inspection_service.inspect(
                    requests[0], cancel_event=self._cancel_event, stream_report=True
                )]
            else:
                results = self.inspection_service.inspect_many(requests, cancel_event=self._cancel_event)
                self._render(results)
        finally:
            self._restore_signal_handlers()

        for operation, stats in self.logging_service.get_performance_stats().items():
            self.logger.debug(f"{operation}: {stats}")

        return EXIT_OK if all(result.success for result in results) else EXIT_FAILURE

    def _render(self, results):
        if self.config.output_format == "json":
            self.report_service.render_json(results)
            for result in results:
                if result.error is not None:
                    self.report_service.render_error(result.error)
            return

        for position, result in enumerate(results):
            if position:
                self.report_service.separator()
            self.report_service.render_result(result)

    def shutdown(self):
        """Cancel any in-flight dial or handshake."""
        self._cancel_event.set()

    def _write_error(self, message: str):
        stream = self.stderr if self.stderr is not None else sys.stderr
        stream.write(message + "\n")
        stream.flush()


def port_number(value: str) -> int:
    """argparse type for a TCP port."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not (1 <= port <= 65535):
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def write_default_config(path: str) -> int:
    """Create a configuration file holding the defaults; never overwrites."""
    try:
        ConfigService().create_default_config_file(path)
    except OSError as e:
        sys.stderr.write(f"Error: cannot write configuration: {e}\n")
        return EXIT_FAILURE
    print(f"Wrote default configuration to {path}")
    return EXIT_OK


def build_parser():
    parser = argparse.ArgumentParser(
        prog='tlsinspect',
        description='Connect to a TLS server and print the certificate chain it presents.'
    )
    parser.add_argument('hosts', nargs='*', metavar='HOST',
                        help='Hostname for SNI and validation (e.g. www.example.com)')
    parser.add_argument('--ip', dest='address', metavar='ADDRESS',
                        help='Specific address to connect to; HOST is still asserted and validated')
    parser.add_argument('-p', '--port', type=port_number, help='Port to connect to (default: 443)')
    parser.add_argument('--timeout', type=float, metavar='SECONDS',
                        help='Dial and handshake timeout in seconds (default: 10)')
    parser.add_argument('--report-untrusted', action='store_true',
                        help='Show chains that fail verification and mark them NOT TRUSTED')
    parser.add_argument('--json', action='store_true', help='Print the report as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Include fingerprints, signature algorithms and SANs')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--log-level', choices=LOG_LEVELS, help='Logging level (default: WARNING)')
    parser.add_argument('--write-config', metavar='PATH',
                        help='Write a configuration file with the default settings to PATH and exit')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the inspector."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.write_config:
        if args.hosts:
            parser.error("--write-config does not take a HOST")
        sys.exit(write_default_config(args.write_config))

    if not args.hosts:
        parser.error("at least one HOST is required")

    if args.address is not None and len(args.hosts) > 1:
        parser.error("--ip can only be used with a single HOST")

    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be positive")

    app = InspectorApplication(config_path=args.config)

    if not app.initialize(
        timeout_seconds=args.timeout,
        verification_mode="report" if args.report_untrusted else None,
        output_format="json" if args.json else None,
        verbose=True if args.verbose else None,
        log_level=args.log_level
    ):
        sys.exit(EXIT_USAGE)

    sys.exit(app.run(args.hosts, address_override=args.address, port=args.port))


if __name__ == '__main__':
    main()
