"""
reqgraph.commands.completion - Shell tab-completion setup.

Prints the argcomplete activation line for the detected (or requested) shell.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

SHELLS = ("bash", "zsh", "fish", "tcsh")

_SNIPPETS = {
    "bash": 'eval "$(register-python-argcomplete reqgraph)"',
    "zsh": 'eval "$(register-python-argcomplete reqgraph)"',
    "fish": "register-python-argcomplete --shell fish reqgraph | source",
    "tcsh": "eval `register-python-argcomplete --shell tcsh reqgraph`",
}

_RC_FILES = {
    "bash": "~/.bashrc",
    "zsh": "~/.zshrc",
    "fish": "~/.config/fish/config.fish",
    "tcsh": "~/.tcshrc",
}


def detect_shell() -> str:
    """Detect the current shell from the environment."""
    shell = os.environ.get("SHELL", "")
    basename = Path(shell).name if shell else ""
    if basename in SHELLS:
        return basename
    return "bash"


def _check_argcomplete() -> bool:
    try:
        import argcomplete  # noqa: F401

        return True
    except ImportError:
        return False


def run(args) -> int:
    """Handle ``reqgraph completion``."""
    if not _check_argcomplete():
        print("Error: argcomplete is not installed.", file=sys.stderr)
        print("Install with: pip install reqgraph[completion]", file=sys.stderr)
        return 1

    shell = getattr(args, "shell", None) or detect_shell()
    snippet = _SNIPPETS[shell]
    print(f"# reqgraph shell completion for {shell}, add to {_RC_FILES[shell]}:")
    if shell == "zsh":
        print("autoload -U bashcompinit")
        print("bashcompinit")
    print(snippet)
    return 0
