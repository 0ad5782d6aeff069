"""
Thin wrappers around external tool invocation and logging set-up.

Every external program the pipeline runs goes through `run_command` (argument
lists) or `run_shell_pipeline` (`a | b` pipelines under bash with pipefail).
Both run with `check=True`, so a non-zero exit surfaces as
`subprocess.CalledProcessError` and is attributed to a stage by the caller.
"""

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import IO, Dict, Iterable, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def configure_logging(verbose: bool = False) -> None:
    """Configure logging to stdout; the run log file is attached later."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])


def add_log_file(log_path: Path) -> logging.Handler:
    """Mirror the root logger into `log_path`."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="w")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    return handler


def check_dependencies(dependencies: Iterable[str]) -> None:
    """Ensure required external binaries are available."""
    missing = [exe for exe in dependencies if shutil.which(exe) is None]
    if missing:
        raise RuntimeError(
            "Missing required executables: "
            + ", ".join(missing)
            + ". Please install them or add them to PATH and re-run."
        )


def format_command(command: Iterable[str | Path] | str) -> str:
    if isinstance(command, str):
        return command
    return " ".join(str(part) for part in command)


def run_command(
    command: Iterable[str | Path],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    stdout: Optional[IO] = None,
    stderr: Optional[IO] = None,
    verbose: bool = False,
) -> subprocess.CompletedProcess:
    """Wrapper around subprocess.run with logging and error propagation.

    Accepts Path objects in the command iterable and coerces them to strings.
    With `verbose` the command is echoed at INFO, otherwise at DEBUG.
    """
    cmd_list = [str(part) for part in command]
    logging.log(logging.INFO if verbose else logging.DEBUG, "Running command: %s", " ".join(cmd_list))
    merged_env = os.environ.copy()
    if env:
        merged_env.update({k: str(v) for k, v in env.items()})
    return subprocess.run(
        cmd_list,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
        stdout=stdout,
        stderr=stderr,
        check=True,
    )


def run_shell_pipeline(
    script: str,
    *,
    cwd: Optional[Path] = None,
    stderr: Optional[IO] = None,
    verbose: bool = False,
) -> subprocess.CompletedProcess:
    """Run a shell pipeline so that a failure in any member fails the whole call."""
    return run_command(
        ["bash", "-c", "set -euo pipefail\n" + script],
        cwd=cwd,
        stderr=stderr,
        verbose=verbose,
    )
