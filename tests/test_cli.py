"""Tests for the command line entry point."""
import logging
from unittest.mock import patch

import pytest

from bulk2es import __version__
from bulk2es.bulk_load import FileResult, RunSummary
from bulk2es.cli import build_parser, main, setup_logging
from bulk2es.errors import ConfigError


@pytest.fixture(autouse=True)
def quiet_setup():
    with patch("bulk2es.cli.setup_logging"), patch("bulk2es.cli.load_dotenv"):
        yield


class TestParser:

    def test_requires_input_dir_and_config(self):
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args([])
        assert excinfo.value.code == 2

    def test_requires_config(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["data"])

    def test_short_config_flag(self):
        args = build_parser().parse_args(["data", "-c", "es.yml"])
        assert args.input_dir == "data"
        assert args.config == "es.yml"
        assert args.workers is None
        assert args.strict is False

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["-v"])
        assert excinfo.value.code == 0
        assert f"bulk2es {__version__}" in capsys.readouterr().out

    @pytest.mark.parametrize("value", ["0", "-1", "many"])
    def test_workers_must_be_positive(self, value):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["data", "-c", "es.yml", "--workers", value])


class TestMain:

    @patch("bulk2es.cli.run")
    def test_success(self, run):
        run.return_value = RunSummary()
        main(["data", "--config", "es.yml", "--workers", "4"])
        run.assert_called_once_with("data", "es.yml", workers=4)

    @patch("bulk2es.cli.run")
    def test_fatal_error_exits_1(self, run, caplog):
        run.side_effect = ConfigError("config file is not found. es.yml")
        with caplog.at_level(logging.ERROR):
            with pytest.raises(SystemExit) as excinfo:
                main(["data", "-c", "es.yml"])
        assert excinfo.value.code == 1
        assert "config file is not found" in caplog.text

    @patch("bulk2es.cli.run")
    def test_failed_files_are_lenient_by_default(self, run):
        run.return_value = RunSummary(files=[FileResult(path="a.json", error="boom")])
        main(["data", "-c", "es.yml"])

    @patch("bulk2es.cli.run")
    def test_strict_mode_exits_1_on_failed_files(self, run):
        run.return_value = RunSummary(files=[FileResult(path="a.json", error="boom")])
        with pytest.raises(SystemExit) as excinfo:
            main(["data", "-c", "es.yml", "--strict"])
        assert excinfo.value.code == 1


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def keep_root_handlers(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_default_is_info(self, monkeypatch):
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        assert setup_logging() == logging.INFO

    def test_reads_log_level_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert setup_logging() == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        assert setup_logging() == logging.INFO
        assert logging.getLogger("elastic_transport").level == logging.WARNING
