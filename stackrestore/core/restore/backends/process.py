from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""


CommandRunner = Callable[..., CommandResult]


def run_command(args: List[str], *, stdin_path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> CommandResult:
    """
    Run a database client tool to completion. ``stdin_path`` is streamed to the
    child's stdin. Raises FileNotFoundError when the binary is not installed.
    """
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)
    if stdin_path is not None:
        with open(stdin_path, "rb") as stdin:
            proc = subprocess.run(args, stdin=stdin, capture_output=True, env=full_env, check=False)
    else:
        proc = subprocess.run(args, stdin=subprocess.DEVNULL, capture_output=True, env=full_env, check=False)
    return CommandResult(
        returncode=int(proc.returncode),
        stdout=proc.stdout.decode("utf-8", errors="replace"),
        stderr=proc.stderr.decode("utf-8", errors="replace"),
    )
