"""Tests for shell tab-completion setup."""

import argparse
import os
from unittest.mock import patch

from reqgraph.commands import completion
from reqgraph.commands.completion import SHELLS, detect_shell


class TestDetectShell:
    """Tests for detect_shell()."""

    def test_detects_zsh(self):
        with patch.dict(os.environ, {"SHELL": "/bin/zsh"}):
            assert detect_shell() == "zsh"

    def test_detects_fish(self):
        with patch.dict(os.environ, {"SHELL": "/usr/bin/fish"}):
            assert detect_shell() == "fish"

    def test_defaults_to_bash_for_unknown(self):
        with patch.dict(os.environ, {"SHELL": "/bin/unknown"}):
            assert detect_shell() == "bash"

    def test_defaults_to_bash_when_unset(self):
        with patch.dict(os.environ, {}, clear=True):
            assert detect_shell() == "bash"


class TestRun:
    """Tests for the completion command output."""

    def test_every_shell_has_a_snippet(self):
        for shell in SHELLS:
            assert "register-python-argcomplete" in completion._SNIPPETS[shell]
            assert shell in completion._RC_FILES

    def test_prints_snippet_for_requested_shell(self, capsys):
        with patch.object(completion, "_check_argcomplete", return_value=True):
            assert completion.run(argparse.Namespace(shell="fish")) == 0
        out = capsys.readouterr().out
        assert "~/.config/fish/config.fish" in out
        assert "| source" in out

    def test_zsh_enables_bashcompinit(self, capsys):
        with patch.object(completion, "_check_argcomplete", return_value=True):
            completion.run(argparse.Namespace(shell="zsh"))
        assert "bashcompinit" in capsys.readouterr().out

    def test_missing_argcomplete(self, capsys):
        with patch.object(completion, "_check_argcomplete", return_value=False):
            assert completion.run(argparse.Namespace(shell="bash")) == 1
        assert "pip install reqgraph[completion]" in capsys.readouterr().err
