"""Tests for running single commands."""

import os
import stat
import sys
from pathlib import Path

import pytest

from multiexec.exceptions import CommandFailed, InvalidArgument, SpawnFailure
from multiexec.executor import Executor, one
from multiexec.types import ExecOptions

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires a POSIX shell")


def silent_executor(**settings):
    return Executor.create(interactive="silent", quiet=True, **settings)


class LogSink:
    """Collects log lines written by the executor."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, *parts) -> None:
        self.lines.append(" ".join(str(p) for p in parts))


class TestSilentMode:
    """Tests for captured, non-echoed execution."""

    @pytest.mark.asyncio
    async def test_shell_string(self):
        result = await silent_executor().one("echo hi")

        assert result.ok
        assert result.code == 0
        assert result.stdout == "hi\n"
        assert result.stderr == ""
        assert result.output == "hi\n"
        assert result.command == "echo hi"
        assert result.cwd == os.getcwd()
        assert result.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_argv_is_not_shell_interpreted(self):
        result = await silent_executor().one(["echo", "$HOME", "a  b"])
        assert result.stdout == "$HOME a  b\n"

    @pytest.mark.asyncio
    async def test_stderr_and_interleaved_output(self):
        result = await silent_executor().one("echo out; echo err >&2")

        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert sorted(result.output.splitlines()) == ["err", "out"]

    @pytest.mark.asyncio
    async def test_cwd(self, tmp_path):
        result = await silent_executor().one("pwd", tmp_path)

        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()
        assert result.cwd == str(tmp_path)

    @pytest.mark.asyncio
    async def test_executor_cwd_default(self, tmp_path):
        result = await silent_executor(cwd=str(tmp_path)).one("pwd")
        assert Path(result.stdout.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_normalize_cwd(self):
        executor = silent_executor(normalize_cwd=lambda cwd: str(Path(cwd).resolve()))
        result = await executor.one("true", ".")
        assert result.cwd == str(Path.cwd().resolve())

    @pytest.mark.asyncio
    async def test_stdin_is_closed(self):
        """A command waiting on stdin sees EOF instead of hanging."""
        result = await silent_executor().one("cat", {"timeout_ms": 5000})
        assert result.ok
        assert result.stdout == ""

    @pytest.mark.asyncio
    async def test_utf8_output(self):
        result = await silent_executor().one(["printf", "h\\303\\251llo \\342\\234\\223"])
        assert result.stdout == "héllo ✓"


class TestTeeMode:
    """Tests for captured and echoed execution."""

    @pytest.mark.asyncio
    async def test_echo_with_prefix(self, capsys):
        executor = Executor.create(interactive="tee", quiet=True, colors=False)
        result = await executor.one("echo out; echo err >&2", {"prefix": "app"})

        captured = capsys.readouterr()
        assert captured.out == "app | out\n"
        assert captured.err == "app | err\n"
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"

    @pytest.mark.asyncio
    async def test_prefix_suffix(self, capsys):
        executor = Executor.create(quiet=True, colors=False, prefix_suffix=": ")
        await executor.one("printf 'a\\nb'", {"prefix": "x"})

        assert capsys.readouterr().out == "x: a\nx: b\n"

    @pytest.mark.asyncio
    async def test_echo_without_prefix(self, capsys):
        executor = Executor.create(quiet=True, colors=False)
        result = await executor.one("echo plain")

        assert capsys.readouterr().out == "plain\n"
        assert result.stdout == "plain\n"


class TestInheritMode:
    """Tests for direct terminal passthrough."""

    @pytest.mark.asyncio
    async def test_nothing_captured(self, capfd):
        result = await Executor.create(quiet=True).one("echo direct", {"interactive": True})

        assert result.ok
        assert result.stdout == ""
        assert result.output == ""
        assert "direct" in capfd.readouterr().out


class TestRealShellMode:
    """Tests for running through the user's shell."""

    @pytest.mark.asyncio
    async def test_runs_through_configured_shell(self):
        executor = Executor.create(quiet=True, env={"SHELL": "/bin/sh"}, interactive="real_shell")
        result = await executor.one("exit 0")

        assert result.ok
        assert result.stdout == ""


class TestFailures:
    """Tests for non-zero exits, timeouts and spawn errors."""

    @pytest.mark.asyncio
    async def test_non_zero_raises(self):
        with pytest.raises(CommandFailed) as exc_info:
            await silent_executor().one("echo partial; exit 3")

        error = exc_info.value
        assert error.code == 3
        assert error.command == "echo partial; exit 3"
        assert str(error) == "Command failed: echo partial; exit 3 (code 3)"
        assert error.result.stdout == "partial\n"

    @pytest.mark.asyncio
    async def test_non_zero_returned_when_not_throwing(self):
        sink = LogSink()
        executor = Executor.create(interactive="silent", colors=False, throw_on_non_zero=False)
        result = await executor.one("exit 3", {"log": sink})

        assert result.code == 3
        assert not result.ok
        assert sink.lines[0].endswith("$ exit 3")
        assert sink.lines[-1] == "✗ code 3"

    @pytest.mark.asyncio
    async def test_per_call_throw_overrides_executor(self):
        result = await silent_executor().one("exit 1", ExecOptions(throw_on_non_zero=False))
        assert result.code == 1

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        with pytest.raises(CommandFailed, match="timed out after 100ms") as exc_info:
            await silent_executor().one("sleep 10", {"timeout_ms": 100})

        assert exc_info.value.result.timed_out
        assert exc_info.value.cause == "timed out after 100ms"

    @pytest.mark.asyncio
    async def test_timeout_result(self):
        result = await silent_executor().one("sleep 10", {"timeout_ms": 100, "throw_on_non_zero": False})

        assert result.timed_out
        assert not result.ok
        assert result.code != 0
        assert result.duration_ms < 5000

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with pytest.raises(SpawnFailure) as exc_info:
            await silent_executor().one(["multiexec-no-such-binary", "--help"])

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        assert exc_info.value.command == "multiexec-no-such-binary --help"

    @pytest.mark.asyncio
    async def test_missing_cwd(self, tmp_path):
        with pytest.raises(SpawnFailure):
            await silent_executor().one("true", tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_spawn_failure_logged(self):
        sink = LogSink()
        executor = Executor.create(interactive="silent", colors=False)
        with pytest.raises(SpawnFailure):
            await executor.one(["multiexec-no-such-binary"], {"log": sink})

        assert sink.lines[-1].startswith("✗ ")

    @pytest.mark.asyncio
    async def test_invalid_arguments_spawn_nothing(self):
        sink = LogSink()
        with pytest.raises(InvalidArgument):
            await Executor.create().one("ls", 42, {"log": sink})
        assert sink.lines == []

    @pytest.mark.asyncio
    async def test_wrong_option_type_spawns_nothing(self, tmp_path):
        with pytest.raises(InvalidArgument, match="timeout_ms"):
            await silent_executor().one("touch spawned", tmp_path, {"timeout_ms": "5"})
        assert not (tmp_path / "spawned").exists()

    @pytest.mark.asyncio
    async def test_wrong_batch_option_type_spawns_nothing(self, tmp_path):
        with pytest.raises(InvalidArgument, match="env"):
            await silent_executor().many(["touch a", "touch b"], tmp_path, {"env": {"X": 1}})
        assert list(tmp_path.iterdir()) == []


class TestLogging:
    """Tests for banner and status lines."""

    @pytest.mark.asyncio
    async def test_banner_and_success(self, tmp_path):
        sink = LogSink()
        executor = Executor.create(interactive="silent", colors=False)
        await executor.one("true", tmp_path, {"log": sink, "prefix": "app"})

        assert sink.lines[0] == f"app | {tmp_path} $ true"
        assert sink.lines[1].startswith("✓ ")
        assert sink.lines[1].endswith("ms")

    @pytest.mark.asyncio
    async def test_quiet(self):
        sink = LogSink()
        await silent_executor().one("true", {"log": sink})
        assert sink.lines == []

    @pytest.mark.asyncio
    async def test_default_sink_prints(self, capsys):
        await Executor.create(interactive="silent", colors=False).one("true")
        out = capsys.readouterr().out
        assert "$ true" in out
        assert "✓" in out

    @pytest.mark.asyncio
    async def test_colored_banner_when_forced(self):
        sink = LogSink()
        await Executor.create(interactive="silent").one("true", {"log": sink, "colors": True})
        assert "\x1b[" in sink.lines[0]

    @pytest.mark.asyncio
    async def test_plain_banner_when_not_a_terminal(self, capsys):
        """Child colors default on, but our own lines follow the stream."""
        await Executor.create(interactive="silent").one("true")
        out = capsys.readouterr().out
        assert "$ true" in out
        assert "\x1b[" not in out

    @pytest.mark.asyncio
    async def test_reserved_stdout(self, capsys):
        executor = Executor.create(reserve_stdout=True, colors=False)
        await executor.one("echo teed", {"prefix": "app"})

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "$ echo teed" in captured.err
        assert "app | teed\n" in captured.err

    def test_configure_keeps_reserved_stdout(self):
        assert Executor.create(reserve_stdout=True).configure(quiet=True).reserve_stdout is True


class TestEnvironment:
    """Tests for environment handling."""

    @pytest.mark.asyncio
    async def test_per_call_env(self):
        result = await silent_executor().one("echo $MULTIEXEC_TEST", {"env": {"MULTIEXEC_TEST": "call"}})
        assert result.stdout == "call\n"

    @pytest.mark.asyncio
    async def test_call_env_wins_over_executor_env(self):
        executor = silent_executor(env={"MULTIEXEC_A": "executor", "MULTIEXEC_B": "executor"})
        result = await executor.one("echo $MULTIEXEC_A $MULTIEXEC_B", {"env": {"MULTIEXEC_B": "call"}})
        assert result.stdout == "executor call\n"

    @pytest.mark.asyncio
    async def test_unset_variable(self, monkeypatch):
        monkeypatch.setenv("MULTIEXEC_GONE", "1")
        result = await silent_executor().one("echo ${MULTIEXEC_GONE-unset}", {"env": {"MULTIEXEC_GONE": None}})
        assert result.stdout == "unset\n"

    @pytest.mark.asyncio
    async def test_colors_on(self):
        result = await silent_executor().one("echo $FORCE_COLOR ${NO_COLOR-none}")
        assert result.stdout == "3 none\n"

    @pytest.mark.asyncio
    async def test_colors_off(self):
        result = await silent_executor(colors=False).one("echo ${FORCE_COLOR-none} $NO_COLOR")
        assert result.stdout == "none 1\n"

    @pytest.mark.asyncio
    async def test_parent_environment_untouched(self):
        before = dict(os.environ)
        await silent_executor().one("true", {"env": {"MULTIEXEC_X": "1"}})
        assert dict(os.environ) == before

    @pytest.mark.asyncio
    async def test_prefer_local(self, tmp_path):
        bin_dir = tmp_path / "node_modules" / ".bin"
        bin_dir.mkdir(parents=True)
        tool = bin_dir / "multiexec-local-tool"
        tool.write_text("#!/bin/sh\necho local\n")
        tool.chmod(tool.stat().st_mode | stat.S_IXUSR)

        shell_result = await silent_executor().one("multiexec-local-tool", tmp_path, {"prefer_local": True})
        argv_result = await silent_executor(prefer_local=True).one(["multiexec-local-tool"], tmp_path)

        assert shell_result.stdout == "local\n"
        assert argv_result.stdout == "local\n"


class TestComposition:
    """Tests for prefixes and wrappers applied at run time."""

    @pytest.mark.asyncio
    async def test_command_prefix(self):
        executor = silent_executor(command_prefix=["env", "MULTIEXEC_P=prefixed"])
        result = await executor.one(["sh", "-c", "echo $MULTIEXEC_P"])

        assert result.stdout == "prefixed\n"
        assert result.command == "env MULTIEXEC_P=prefixed sh -c 'echo $MULTIEXEC_P'"

    @pytest.mark.asyncio
    async def test_escaped_wrapper_round_trip(self):
        """A double-quoted wrapper passes every argument through intact."""
        argv = ["printf", "%s\\n", "a b", 'q"x', "$HOME", "`id`", "it's", "back\\slash"]
        executor = silent_executor(command_wrapper='sh -c "{{commandEscaped}}"')
        result = await executor.one(argv)

        assert result.stdout.splitlines() == argv[2:]
        assert result.command.startswith('sh -c "printf ')

    @pytest.mark.asyncio
    async def test_nested_quote_wrapper_round_trip(self):
        """Single quotes inside a double-quoted wrapper reach the inner shell intact."""
        executor = silent_executor(command_wrapper="""sh -c "printf '%s\\n' '{{commandEscaped}}'" """.strip())
        for text in ("echo $HOME", "it's `id`", 'say "hi" \\ there'):
            result = await executor.one(text)
            assert result.stdout == text + "\n"

    @pytest.mark.asyncio
    async def test_raw_wrapper(self):
        executor = silent_executor(command_wrapper="{{command}} && echo after")
        result = await executor.one("echo before")
        assert result.stdout == "before\nafter\n"

    def test_compose_one(self):
        executor = Executor.create(command_prefix="sudo", command_wrapper="ssh box {{command}}")
        assert executor.compose_one(["ls", "my dir"]) == "ssh box sudo ls 'my dir'"

    def test_compose_one_in_cwd(self):
        assert Executor.create().compose_one_in_cwd("make", "/src/app") == "cd /src/app && make"

    def test_configure_returns_new_executor(self):
        executor = Executor.create()
        changed = executor.configure(quiet=True)

        assert changed.config.quiet is True
        assert executor.config.quiet is False
        assert changed.reporter is executor.reporter


class TestModuleLevelOne:
    """Tests for the module-level convenience function."""

    @pytest.mark.asyncio
    async def test_one(self):
        result = await one("echo hi", {"interactive": False, "quiet": True})

        assert result.code == 0
        assert result.stdout == "hi\n"
        assert result.stderr == ""
        assert result.command == "echo hi"
