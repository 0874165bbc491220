"""Tests for the ante command-line driver."""

import json

import pytest

from ante import load_source, run_cli
from lexer import AnteLoadError


class TestRunFile:
    def test_hello(self, programs_dir, capsys):
        assert run_cli([str(programs_dir / "hello.ante")]) == 0
        captured = capsys.readouterr()
        assert captured.out == "Hi!\n"
        assert captured.err == ""

    def test_countdown(self, programs_dir, capsys):
        assert run_cli([str(programs_dir / "countdown.ante")]) == 0
        assert capsys.readouterr().out == "5\n4\n3\n2\n1\n"

    def test_missing_file(self, tmp_path, capsys):
        path = tmp_path / "nope.ante"
        assert run_cli([str(path)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.startswith(f"Failed to read {path}")

    def test_invalid_utf8_file(self, tmp_path, capsys):
        path = tmp_path / "latin1.ante"
        path.write_bytes(b"2\xe9 10\xe9\n")
        assert run_cli([str(path)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.startswith(f"Failed to read {path}: ")
        assert "utf-8" in captured.err

    def test_load_source_raises(self, tmp_path):
        with pytest.raises(AnteLoadError, match="Failed to read"):
            load_source(str(tmp_path / "missing.ante"))

    def test_missing_argument_is_usage_error(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            run_cli([])
        assert excinfo.value.code == 2


class TestSourceMode:
    def test_literal_source(self, capsys):
        assert run_cli(["-source", "7♦ 9♥ 2♦ J♦"]) == 0
        assert capsys.readouterr().out == "A"

    def test_comment_flag(self, capsys):
        assert run_cli(["--source", "--comment", ";", "5♦ 10♦ ; 10♦\n10♦"]) == 0
        assert capsys.readouterr().out == "15"

    def test_empty_comment_flag_rejected(self, capsys):
        with pytest.raises(SystemExit) as excinfo:
            run_cli(["-source", "--comment", "", "2♦"])
        assert excinfo.value.code == 2

    def test_registers_flag(self, capsys):
        assert run_cli(["-source", "--registers", "9♦ 8♥\n2♠ 5♠"]) == 0
        assert capsys.readouterr().err == "♦=72, ♥=0, ♠=-3, ♣=0\n"


class TestRuntimeErrors:
    def test_traceback_on_stderr(self, capsys):
        assert run_cli(["-source", "2♠ K♠"]) == 1
        captured = capsys.readouterr()
        assert "Traceback (most recent call last):" in captured.err
        assert "LabelNotFoundError: Ante exception: can't find Q♠ to go to on line 1 (pc:3)" in captured.err

    def test_output_before_error_is_kept(self, capsys):
        assert run_cli(["-source", "7♦ 9♥ 2♦ J♦\n5♦ A♣"]) == 1
        captured = capsys.readouterr()
        assert captured.out == "A"
        assert "DivisionByZeroError" in captured.err

    def test_traceback_json(self, capsys):
        assert run_cli(["-source", "--traceback-json", "2♦ 10♥ 10♥ 3♥ J♦"]) == 1
        err = capsys.readouterr().err
        payload = err[err.index("{"):]
        data = json.loads(payload)
        assert data["error"]["type"] == "CharacterRangeError"
        assert data["error"]["message"] == "character code 600 is out of 0..255 range"

    def test_verbose_traceback(self, capsys):
        assert run_cli(["-source", "-verbose", "2♠ K♠"]) == 1
        assert "Registers: ♦=0, ♥=0, ♠=2, ♣=0" in capsys.readouterr().err
