"""Command composition: prefixes, wrapper templates and shell escaping.

A configured command prefix is put ahead of the command, then a wrapper
template may embed the result, e.g. to run it through a container
runtime::

    >>> compose_command(["ls", "-la"], command_prefix="sudo")
    'sudo ls -la'
    >>> compose_command("echo $HOME", command_wrapper='docker exec app sh -c "{{commandEscaped}}"')
    'docker exec app sh -c "echo \\\\$HOME"'
"""

import re
import shlex

from multiexec.types import Command

COMMAND_PLACEHOLDER = "{{command}}"
ESCAPED_PLACEHOLDER = "{{commandEscaped}}"

_DOUBLE_QUOTE_SPECIAL = re.compile(r'(["\\$`])')


def join_command(command: Command) -> str:
    """Render a command as one shell-safe string.

    Argv elements are quoted where needed so that a shell splits the
    result back into the same arguments.
    """
    if isinstance(command, str):
        return command
    return shlex.join(command)


def shell_escape(command: str, quote: str = '"') -> str:
    """Escape a command for embedding inside a quoted shell string.

    Args:
        command: Text to embed
        quote: The quote character surrounding the embedding site

    Returns:
        For double quotes, the text with backslash, double quote, dollar and
        backtick backslash-escaped. For single quotes, the text with each
        single quote closed, emitted in double quotes and reopened.
    """
    if quote == "'":
        return command.replace("'", "'\"'\"'")
    return _DOUBLE_QUOTE_SPECIAL.sub(r"\\\1", command)


def apply_prefix(command: Command, command_prefix: str | list[str] | None) -> Command:
    """Put the configured prefix ahead of a command.

    An argv prefix keeps the argv shape; a string prefix yields a string.
    """
    if not command_prefix:
        return command
    if isinstance(command_prefix, str):
        return f"{command_prefix} {join_command(command)}"
    if isinstance(command, str):
        return [*command_prefix, command]
    return [*command_prefix, *command]


def _open_quote(text: str) -> tuple[str | None, str]:
    """Quote left open at the end of text, with the quoted part as read."""
    quote = None
    body: list[str] = []
    i = 0
    while i < len(text):
        char = text[i]
        if quote is None:
            if char == "\\":
                i += 1
            elif char in "'\"":
                quote, body = char, []
        elif char == quote:
            quote = None
        elif quote == '"' and char == "\\" and text[i + 1 : i + 2] in ('"', "\\", "$", "`"):
            i += 1
            body.append(text[i])
        else:
            body.append(char)
        i += 1
    return quote, "".join(body)


def _enclosing_quotes(before: str) -> list[str]:
    """Quotes open at the end of ``before``, innermost first.

    Follows two levels: the wrapper as the spawning shell reads it, and the
    open quoted string as the shell it starts reads it.
    """
    outer, body = _open_quote(before)
    if outer is None:
        return []
    inner, _ = _open_quote(body)
    return [quote for quote in (inner, outer) if quote is not None]


def escape_for_wrapper(text: str, before: str) -> str:
    """Escape text for a placeholder preceded by ``before`` in a wrapper.

    Each enclosing quote level is escaped for, innermost first. An unquoted
    placeholder gets double-quote escaping.
    """
    for quote in _enclosing_quotes(before) or ['"']:
        text = shell_escape(text, quote)
    return text


def apply_wrapper(command: Command, command_wrapper: str | None) -> Command:
    """Embed a command into the configured wrapper template.

    Without a placeholder the wrapper is treated as an argv prefix and the
    joined command is appended as a single argument.
    """
    if not command_wrapper:
        return command
    text = join_command(command)
    if ESCAPED_PLACEHOLDER in command_wrapper:
        pieces = command_wrapper.split(ESCAPED_PLACEHOLDER)
        wrapped = pieces[0]
        for index, piece in enumerate(pieces[1:], 1):
            before = ESCAPED_PLACEHOLDER.join(pieces[:index])
            wrapped += escape_for_wrapper(text, before) + piece
        return wrapped
    if COMMAND_PLACEHOLDER in command_wrapper:
        return command_wrapper.replace(COMMAND_PLACEHOLDER, text)
    return [*shlex.split(command_wrapper), text]


def compose_command(
    command: Command,
    command_prefix: str | list[str] | None = None,
    command_wrapper: str | None = None,
) -> Command:
    """Apply prefix then wrapper; the result is what gets spawned."""
    return apply_wrapper(apply_prefix(command, command_prefix), command_wrapper)


def in_directory(cwd: str, command: Command) -> str:
    """Render ``cd <cwd> && <command>`` for display or dry runs."""
    return f"cd {shlex.quote(cwd)} && {join_command(command)}"
