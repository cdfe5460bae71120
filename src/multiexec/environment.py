"""Environment composition for child processes.

Everything here is a pure function of its inputs: the inherited process
environment is passed in, never read or modified in place.
"""

import os
import sys
from pathlib import Path, PureWindowsPath
from typing import Mapping

# Variables forced when colors are switched on or off. None unsets.
COLOR_ON_ENV: dict[str, str | None] = {
    "FORCE_COLOR": "3",
    "COLORTERM": "truecolor",
    "NO_COLOR": None,
}
COLOR_OFF_ENV: dict[str, str | None] = {
    "FORCE_COLOR": None,
    "COLORTERM": None,
    "NO_COLOR": "1",
}

# Project-local executable directories, relative to a project root.
LOCAL_BIN_DIRS = (
    Path("node_modules") / ".bin",
    Path(".venv") / ("Scripts" if os.name == "nt" else "bin"),
)

_POSIX_INTERACTIVE_SHELLS = {"bash", "zsh", "fish", "sh", "ksh", "dash"}


def _apply(env: dict[str, str], overlay: Mapping[str, str | None] | None) -> None:
    for key, value in (overlay or {}).items():
        if value is None:
            env.pop(key, None)
        else:
            env[key] = str(value)


def build_env(
    base: Mapping[str, str],
    executor_env: Mapping[str, str | None] | None = None,
    call_env: Mapping[str, str | None] | None = None,
    colors: bool | None = None,
) -> dict[str, str]:
    """Compose the environment for one invocation.

    Layers, later wins: ``base``, executor defaults, per-call overrides,
    then the color variables derived from ``colors``. A None value in any
    overlay removes the variable.

    Args:
        base: Inherited environment (usually os.environ)
        executor_env: Executor-wide overlay
        call_env: Per-invocation overlay
        colors: True forces colors on, False forces them off, None leaves
            the variables as the other layers set them

    Returns:
        A new dictionary
    """
    env = dict(base)
    _apply(env, executor_env)
    _apply(env, call_env)
    if colors is True:
        _apply(env, COLOR_ON_ENV)
    elif colors is False:
        _apply(env, COLOR_OFF_ENV)
    return env


def local_bin_dirs(cwd: str | Path) -> list[Path]:
    """Existing project-local bin directories for cwd and its ancestors.

    Nearest directories come first, followed by the directory holding the
    running Python interpreter.
    """
    found: list[Path] = []
    start = Path(cwd).resolve()
    for directory in (start, *start.parents):
        for relative in LOCAL_BIN_DIRS:
            candidate = directory / relative
            if candidate.is_dir():
                found.append(candidate)
    interpreter_dir = Path(sys.executable).parent
    if interpreter_dir not in found:
        found.append(interpreter_dir)
    return found


def prepend_path(env: Mapping[str, str], directories: list[Path]) -> dict[str, str]:
    """Return env with directories put ahead of its PATH."""
    result = dict(env)
    key = next((k for k in result if k.upper() == "PATH"), "PATH")
    current = result.get(key, "")
    parts = [str(d) for d in directories]
    if current:
        parts.append(current)
    result[key] = os.pathsep.join(parts)
    return result


def resolve_login_shell(env: Mapping[str, str]) -> str:
    """Find the user's interactive shell.

    Uses SHELL, then COMSPEC on Windows, then the platform default.
    """
    shell = env.get("SHELL")
    if shell:
        return shell
    if os.name == "nt":
        return env.get("COMSPEC", "cmd.exe")
    if sys.platform == "darwin":
        return "/bin/zsh"
    return "/bin/bash"


def real_shell_argv(shell: str, command: str) -> list[str]:
    """Build the argv that runs command through an interactive shell."""
    name = PureWindowsPath(shell).name.lower()
    if name.endswith(".exe"):
        name = name[: -len(".exe")]
    if name == "cmd":
        return [shell, "/c", command]
    if name in ("powershell", "pwsh"):
        return [shell, "-NoExit", "-Command", command]
    if name in _POSIX_INTERACTIVE_SHELLS:
        return [shell, "-i", "-c", command]
    return [shell, "-c", command]
