"""
Tests for the main application entry point.
"""

import io
import json
import logging
import os
import shutil
import tempfile
import pytest
from unittest.mock import patch

from tlsinspect.main import EXIT_FAILURE, EXIT_OK, EXIT_USAGE, InspectorApplication, main
from tlsinspect.models.config import Config
from tlsinspect.services.config_service import ConfigService
from tlsinspect.security.trust_anchors import TrustAnchorSet

from tests.certificate_factory import LocalTLSServer, SilentServer, create_chain, create_leaf, free_port


class TestInspectorApplication:
    """Test cases for InspectorApplication class."""

    @classmethod
    def setup_class(cls):
        cls.fixture = create_chain("example.test", "www.example.test")
        cls.anchors = TrustAnchorSet.from_certificates([cls.fixture.root], source="test")

    def setup_method(self):
        """Setup test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.stdout = io.StringIO()
        self.stderr = io.StringIO()

    def teardown_method(self):
        """Clean up test fixtures."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_app(self, config_path=None, **overrides):
        app = InspectorApplication(
            config_path=config_path, anchors=self.anchors, stdout=self.stdout, stderr=self.stderr
        )
        assert app.initialize(**overrides) is True
        return app

    def test_application_initialization(self):
        """Test that nothing is wired before initialize()."""
        app = InspectorApplication()

        assert app.config_path is None
        assert app.config is None
        assert app.inspection_service is None
        assert not app.cancel_event.is_set()

    def test_run_requires_initialize(self):
        app = InspectorApplication(anchors=self.anchors)
        with pytest.raises(RuntimeError):
            app.run(["example.test"])

    def test_initialize_with_overrides(self):
        """Test that command-line values win over defaults."""
        app = self.make_app(timeout_seconds=2.0, verification_mode="report", log_level="ERROR")

        assert app.config.timeout_seconds == 2.0
        assert app.config.verification_mode == "report"
        assert app.inspection_service.handshake_service.timeout == 2.0
        assert not app.inspection_service.handshake_service.strict
        assert app.report_service.show_trust

    def test_initialize_from_config_file(self):
        config_path = os.path.join(self.temp_dir, "inspect.conf")
        with open(config_path, 'w') as f:
            f.write("[connection]\nport = 8443\nmax_workers = 2\n\n[output]\nverbose = true\n")

        app = self.make_app(config_path=config_path, verbose=None)

        assert app.config.default_port == 8443
        assert app.config.verbose is True
        assert app.inspection_service.max_workers == 2

    def test_initialize_missing_config(self):
        """Test that a missing config file is a usage error, not a crash."""
        app = InspectorApplication(
            config_path=os.path.join(self.temp_dir, "missing.conf"),
            anchors=self.anchors, stdout=self.stdout, stderr=self.stderr
        )

        assert app.initialize() is False
        assert "configuration failed" in self.stderr.getvalue()

    def test_unreachable_target(self):
        """Header lines are printed, no certificate blocks, one diagnostic."""
        port = free_port()
        app = self.make_app()

        exit_code = app.run(["example.test"], address_override="127.0.0.1", port=port)

        output = self.stdout.getvalue()
        assert exit_code == EXIT_FAILURE
        assert f"Targeting: 127.0.0.1:{port}" in output
        assert "SNI Host:  example.test" in output
        assert "[" not in output
        assert "connect failed" in self.stderr.getvalue()

    def test_invalid_identity(self):
        app = self.make_app()

        exit_code = app.run([""], address_override="127.0.0.1", port=443)

        assert exit_code == EXIT_FAILURE
        assert self.stdout.getvalue() == ""
        assert "resolve failed" in self.stderr.getvalue()

    def test_successful_inspection(self):
        """Test the full report for a trusted chain."""
        app = self.make_app()

        with LocalTLSServer(self.fixture.presented, self.fixture.leaf_key, self.temp_dir) as server:
            exit_code = app.run(["www.example.test"], address_override="127.0.0.1", port=server.port)

        output = self.stdout.getvalue()
        assert exit_code == EXIT_OK
        assert output.index("Targeting:") < output.index("[Leaf]") < output.index("[Intermediate]")
        assert "SNI Host:  www.example.test" in output
        assert "Trust:" not in output
        assert self.stderr.getvalue() == ""

    def test_untrusted_strict(self):
        """Test that an untrusted chain prints no certificate blocks by default."""
        leaf, key = create_leaf(["example.test"])
        app = self.make_app()

        with LocalTLSServer([leaf], key, self.temp_dir) as server:
            exit_code = app.run(["example.test"], address_override="127.0.0.1", port=server.port)

        assert exit_code == EXIT_FAILURE
        assert "[Leaf]" not in self.stdout.getvalue()
        assert "handshake failed" in self.stderr.getvalue()

    def test_untrusted_report_mode(self):
        """Test that report mode shows the chain and still exits non-zero."""
        leaf, key = create_leaf(["example.test"])
        app = self.make_app(verification_mode="report")

        with LocalTLSServer([leaf], key, self.temp_dir) as server:
            exit_code = app.run(["example.test"], address_override="127.0.0.1", port=server.port)

        output = self.stdout.getvalue()
        assert exit_code == EXIT_FAILURE
        assert "Trust:      NOT TRUSTED" in output
        assert "[Leaf] " in output

    def test_multiple_hosts_text(self):
        """Test that each host gets its own block, in argument order."""
        port = free_port()
        app = self.make_app()

        exit_code = app.run(["example.test", "www.example.test"], address_override="127.0.0.1", port=port)

        output = self.stdout.getvalue()
        assert exit_code == EXIT_FAILURE
        assert output.index("SNI Host:  example.test") < output.index("SNI Host:  www.example.test")
        assert "\n\n" in output
        assert self.stderr.getvalue().count("connect failed") == 2

    def test_json_output(self):
        port = free_port()
        app = self.make_app(output_format="json")

        exit_code = app.run(["example.test", "bad name"], address_override="127.0.0.1", port=port)

        data = json.loads(self.stdout.getvalue())
        assert exit_code == EXIT_FAILURE
        assert [entry['identity'] for entry in data] == ["example.test", "bad name"]
        assert data[0]['error']['stage'] == "connect"
        assert data[1]['error']['stage'] == "resolve"

    def test_default_port_from_config(self):
        """Test that the configured port is used when none is given."""
        app = self.make_app()
        app.config.default_port = free_port()

        app.run(["example.test"], address_override="127.0.0.1")

        assert f"Targeting: 127.0.0.1:{app.config.default_port}" in self.stdout.getvalue()

    def test_stalled_handshake_shows_tcp_connection(self):
        """Test that a peer that accepts TCP but never answers TLS is told apart from a dead dial."""
        app = self.make_app(timeout_seconds=0.5)

        with SilentServer() as server:
            exit_code = app.run(["example.test"], address_override="127.0.0.1", port=server.port)

        output = self.stdout.getvalue()
        assert exit_code == EXIT_FAILURE
        assert output.index("SNI Host:") < output.index(f"TCP Connection established to 127.0.0.1:{server.port}")
        assert "timed out during TLS handshake" in self.stderr.getvalue()

    def test_bundled_anchor_load_is_timed(self):
        """Test that loading the bundled roots is recorded as its own stage."""
        app = InspectorApplication(stdout=self.stdout, stderr=self.stderr)
        assert app.initialize() is True

        stats = app.logging_service.get_performance_stats("trust_anchors")
        assert stats["total_calls"] == 1
        assert stats["success_count"] == 1

    def test_supplied_anchors_not_timed(self):
        app = self.make_app()
        assert app.logging_service.get_performance_stats("trust_anchors") == {}

    def test_shutdown_sets_cancel_event(self):
        app = self.make_app()
        app.shutdown()
        assert app.cancel_event.is_set()


class TestMain:
    """Test cases for the command-line entry point."""

    def teardown_method(self):
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)

    @pytest.mark.parametrize("argv", [
        [],
        ["a.example.test", "b.example.test", "--ip", "127.0.0.1"],
        ["example.test", "--timeout", "0"],
        ["example.test", "-p", "0"],
        ["example.test", "-p", "https"],
        ["example.test", "--log-level", "TRACE"],
        ["example.test", "--write-config", "inspect.conf"],
    ])
    def test_usage_errors(self, argv):
        with pytest.raises(SystemExit) as exc_info:
            main(argv)
        assert exc_info.value.code == EXIT_USAGE

    def test_missing_config_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["example.test", "--config", str(tmp_path / "missing.conf")])

        assert exc_info.value.code == EXIT_USAGE
        assert "configuration failed" in capsys.readouterr().err

    def test_write_config(self, tmp_path, capsys):
        """Test that --write-config writes the defaults and inspects nothing."""
        config_path = tmp_path / "conf" / "inspect.conf"

        with patch('tlsinspect.main.InspectorApplication') as mock_app_class:
            with pytest.raises(SystemExit) as exc_info:
                main(["--write-config", str(config_path)])

        assert exc_info.value.code == EXIT_OK
        mock_app_class.assert_not_called()
        assert f"Wrote default configuration to {config_path}" in capsys.readouterr().out
        assert ConfigService(str(config_path)).get_config() == Config()

    def test_write_config_refuses_existing_file(self, tmp_path, capsys):
        config_path = tmp_path / "inspect.conf"
        config_path.write_text("[connection]\nport = 8443\n")

        with pytest.raises(SystemExit) as exc_info:
            main(["--write-config", str(config_path)])

        assert exc_info.value.code == EXIT_FAILURE
        assert "cannot write configuration" in capsys.readouterr().err
        assert config_path.read_text() == "[connection]\nport = 8443\n"

    @patch('tlsinspect.main.InspectorApplication')
    def test_arguments_passed_through(self, mock_app_class):
        """Test that flags become config overrides and run() arguments."""
        mock_app = mock_app_class.return_value
        mock_app.initialize.return_value = True
        mock_app.run.return_value = EXIT_OK

        with pytest.raises(SystemExit) as exc_info:
            main(["www.example.com", "--ip", "10.0.0.5", "-p", "8443", "--timeout", "3",
                  "--report-untrusted", "--json", "-v"])

        assert exc_info.value.code == EXIT_OK
        mock_app_class.assert_called_once_with(config_path=None)
        mock_app.initialize.assert_called_once_with(
            timeout_seconds=3.0,
            verification_mode="report",
            output_format="json",
            verbose=True,
            log_level=None
        )
        mock_app.run.assert_called_once_with(["www.example.com"], address_override="10.0.0.5", port=8443)

    @patch('tlsinspect.main.InspectorApplication')
    def test_unset_flags_do_not_override(self, mock_app_class):
        mock_app = mock_app_class.return_value
        mock_app.initialize.return_value = True
        mock_app.run.return_value = EXIT_FAILURE

        with pytest.raises(SystemExit) as exc_info:
            main(["example.test"])

        assert exc_info.value.code == EXIT_FAILURE
        mock_app.initialize.assert_called_once_with(
            timeout_seconds=None,
            verification_mode=None,
            output_format=None,
            verbose=None,
            log_level=None
        )
        mock_app.run.assert_called_once_with(["example.test"], address_override=None, port=None)
