"""Tests for partycd.cli -- argument parsing and command handlers."""

from unittest.mock import patch

import pytest

from partycd.cli import _friendly_error_handler, build_parser, main

# =====================================================================
# Parser
# =====================================================================


class TestParser:
    def test_subcommands(self):
        parser = build_parser()
        assert parser.parse_args(["demo"]).at == 3.0
        assert parser.parse_args(["demo", "--at", "5"]).at == 5.0
        assert parser.parse_args(["validate", "x.yaml"]).path == "x.yaml"
        assert parser.parse_args(["run", "--config", "c.yaml"]).config == "c.yaml"

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "partycd" in capsys.readouterr().out


# =====================================================================
# Commands
# =====================================================================


class TestValidate:
    def test_valid_file(self, tmp_path, capsys):
        path = tmp_path / "ok.yaml"
        path.write_text("player:\n  name: Alice\n")
        assert main(["validate", str(path)]) == 0
        assert "OK" in capsys.readouterr().out

    def test_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("player:\n  name: Alice\nchannel:\n  type: irc\n")
        assert main(["validate", str(path)]) == 1
        assert "irc" in capsys.readouterr().out

    def test_missing_file(self, tmp_path):
        assert main(["validate", str(tmp_path / "missing.yaml")]) == 1


class TestOtherCommands:
    def test_abilities(self, capsys):
        assert main(["abilities"]) == 0
        assert "Counterspell" in capsys.readouterr().out

    def test_demo(self, capsys):
        assert main(["demo", "--at", "1"]) == 0
        assert "PartyCD missing" in capsys.readouterr().out

    def test_run_rejects_loopback(self, tmp_path, capsys):
        path = tmp_path / "loop.yaml"
        path.write_text("player:\n  name: Alice\n")
        assert main(["run", "--config", str(path)]) == 1
        assert "loopback" in capsys.readouterr().out

    def test_run_invalid_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("player:\n  name: ''\n")
        assert main(["run", "--config", str(path)]) == 1


# =====================================================================
# Friendly error handler
# =====================================================================


class TestFriendlyErrorHandler:
    def test_exit_code_from_main(self):
        with patch("partycd.cli.main", return_value=0):
            with pytest.raises(SystemExit) as exc:
                _friendly_error_handler()
        assert exc.value.code == 0

    def test_missing_paho_hint(self, capsys):
        err = ImportError("No module named 'paho'", name="paho")
        with patch("partycd.cli.main", side_effect=err):
            with pytest.raises(SystemExit) as exc:
                _friendly_error_handler()
        assert exc.value.code == 1
        assert "partycd[mqtt]" in capsys.readouterr().out

    def test_connection_error(self, capsys):
        with patch("partycd.cli.main", side_effect=ConnectionError("refused")):
            with pytest.raises(SystemExit) as exc:
                _friendly_error_handler()
        assert exc.value.code == 1
        assert "refused" in capsys.readouterr().out

    def test_keyboard_interrupt(self):
        with patch("partycd.cli.main", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as exc:
                _friendly_error_handler()
        assert exc.value.code == 130
