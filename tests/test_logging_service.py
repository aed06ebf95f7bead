"""
Tests for logging setup and stage timing.
"""
import json
import logging
import os
import sys
import tempfile
import time
import unittest

from tlsinspect.models.config import Config
from tlsinspect.services.logging_service import (
    LoggingService, JSONFormatter, PerformanceMonitor
)


class TestJSONFormatter(unittest.TestCase):
    """Test JSON formatter for structured logging."""

    def setUp(self):
        """Set up test fixtures."""
        self.formatter = JSONFormatter()
        self.logger = logging.getLogger('test')

    def make_record(self, msg='Test message', args=(), exc_info=None, level=logging.INFO):
        return self.logger.makeRecord(
            name='tlsinspect.services.handshake_service',
            level=level,
            fn='handshake_service.py',
            lno=42,
            msg=msg,
            args=args,
            exc_info=exc_info
        )

    def test_format_basic_log_record(self):
        """Test formatting a basic log record."""
        record = self.make_record('Handshake with %s complete', ('127.0.0.1:443',))

        log_data = json.loads(self.formatter.format(record))

        self.assertIn('timestamp', log_data)
        self.assertTrue(log_data['timestamp'].endswith('+00:00'))
        self.assertEqual(log_data['level'], 'INFO')
        self.assertEqual(log_data['logger_name'], 'tlsinspect.services.handshake_service')
        self.assertEqual(log_data['message'], 'Handshake with 127.0.0.1:443 complete')
        self.assertEqual(log_data['line_number'], 42)
        self.assertIsNone(log_data['identity'])
        self.assertIsNone(log_data['exception_info'])

    def test_format_log_record_with_exception(self):
        """Test formatting a log record with exception information."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = self.make_record('Error occurred', exc_info=sys.exc_info(), level=logging.ERROR)

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['exception_info']['type'], 'ValueError')
        self.assertEqual(log_data['exception_info']['message'], 'Test exception')
        self.assertIsInstance(log_data['exception_info']['traceback'], list)

    def test_identity_and_stage_lifted_from_extra(self):
        """Test that identity and stage passed via `extra` become top-level fields."""
        record = self.make_record()
        record.identity = 'example.test'
        record.stage = 'connect'
        record.extra_data = {'duration_ms': 12.5}

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['identity'], 'example.test')
        self.assertEqual(log_data['stage'], 'connect')
        self.assertEqual(log_data['extra_data']['duration_ms'], 12.5)


class TestPerformanceMonitor(unittest.TestCase):
    """Test stage timing."""

    def setUp(self):
        """Set up test fixtures."""
        self.monitor = PerformanceMonitor()

    def test_measure_operation_success(self):
        """Test measuring a successful stage."""
        with self.monitor.measure_operation('connect', 'example.test'):
            time.sleep(0.01)

        timings = self.monitor.get_metrics()
        self.assertEqual(len(timings), 1)

        timing = timings[0]
        self.assertEqual(timing.stage, 'connect')
        self.assertEqual(timing.identity, 'example.test')
        self.assertTrue(timing.success)
        self.assertIsNone(timing.error_type)
        self.assertGreater(timing.duration_ms, 0)

    def test_measure_operation_failure(self):
        """Test that a failing stage is recorded and the error propagates."""
        with self.assertRaises(ValueError):
            with self.monitor.measure_operation('decode', 'example.test'):
                raise ValueError("Test error")

        timing = self.monitor.get_metrics()[0]
        self.assertFalse(timing.success)
        self.assertEqual(timing.error_type, 'ValueError')
        self.assertEqual(timing.error_message, 'Test error')

    def test_get_metrics_filtered(self):
        """Test filtering timings by stage."""
        with self.monitor.measure_operation('resolve'):
            pass
        with self.monitor.measure_operation('connect'):
            pass

        self.assertEqual([t.stage for t in self.monitor.get_metrics('connect')], ['connect'])
        self.assertEqual(len(self.monitor.get_metrics()), 2)

    def test_get_operation_stats(self):
        """Test aggregating one stage across hosts."""
        with self.monitor.measure_operation('connect', 'a.example.test'):
            time.sleep(0.001)

        with self.monitor.measure_operation('connect', 'b.example.test'):
            time.sleep(0.005)

        try:
            with self.monitor.measure_operation('connect', 'c.example.test'):
                raise ValueError("Test error")
        except ValueError:
            pass

        stats = self.monitor.get_operation_stats('connect')

        self.assertEqual(stats['operation'], 'connect')
        self.assertEqual(stats['total_calls'], 3)
        self.assertEqual(stats['success_count'], 2)
        self.assertEqual(stats['failure_count'], 1)
        self.assertEqual(stats['failed_identities'], ['c.example.test'])
        self.assertGreater(stats['avg_duration_ms'], 0)
        self.assertGreater(stats['max_duration_ms'], stats['min_duration_ms'])

    def test_stats_for_unknown_stage(self):
        self.assertEqual(self.monitor.get_operation_stats('missing'), {})


class TestLoggingService(unittest.TestCase):
    """Test logging service setup."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.config = Config(
            log_level="INFO",
            log_file_path=os.path.join(self.temp_dir, "logs", "inspect.log")
        )
        self.logging_service = LoggingService(self.config)

    def tearDown(self):
        """Clean up test fixtures."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)

        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_initialization(self):
        """Test logging service initialization."""
        self.assertIsNotNone(self.logging_service.performance_monitor)
        self.assertTrue(os.path.exists(self.config.log_file_path))
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_console_handler_writes_to_stderr(self):
        """The report owns stdout, so log output goes to stderr."""
        stream_handlers = [
            h for h in logging.getLogger().handlers
            if type(h) is logging.StreamHandler
        ]
        self.assertEqual(len(stream_handlers), 1)
        self.assertIs(stream_handlers[0].stream, sys.stderr)

    def test_file_log_is_json(self):
        """Test that file log lines are structured JSON."""
        logging.getLogger('tlsinspect.test').info(
            "Connecting to 127.0.0.1:443", extra={'identity': 'example.test'}
        )
        for handler in logging.getLogger().handlers:
            handler.flush()

        with open(self.config.log_file_path, 'r') as f:
            lines = [json.loads(line) for line in f if line.strip()]

        entry = next(line for line in lines if line['message'] == "Connecting to 127.0.0.1:443")
        self.assertEqual(entry['identity'], 'example.test')

    def test_reinitialization_replaces_handlers(self):
        """Test that creating the service twice does not duplicate handlers."""
        LoggingService(self.config)
        self.assertEqual(len(logging.getLogger().handlers), 2)

    def test_measure_performance(self):
        """Test stage timing through the service."""
        with self.logging_service.measure_performance('connect', 'example.test'):
            time.sleep(0.01)

        stats = self.logging_service.get_performance_stats('connect')

        self.assertEqual(stats['operation'], 'connect')
        self.assertEqual(stats['total_calls'], 1)
        self.assertEqual(stats['success_count'], 1)
        self.assertGreater(stats['avg_duration_ms'], 0)

        self.assertEqual(list(self.logging_service.get_performance_stats()), ['connect'])


if __name__ == '__main__':
    unittest.main()
