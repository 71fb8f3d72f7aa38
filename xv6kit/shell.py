"""Command-line parser for the shell: pipes, lists, background jobs and redirections."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Union

MAXARGS = 10

WHITESPACE = " \t\r\n\v"
SYMBOLS = "<|>&;()"


class OpenFlag(enum.IntFlag):
    """Flags accepted by the open system call."""

    O_RDONLY = 0x000
    O_WRONLY = 0x001
    O_RDWR = 0x002
    O_CREATE = 0x200


class ShellSyntaxError(ValueError):
    """The command line cannot be parsed."""


@dataclass
class ExecCommand:
    """Run a program with arguments."""

    argv: list[str] = field(default_factory=list)


@dataclass
class RedirCommand:
    """Run cmd with file opened on descriptor fd."""

    cmd: "Command"
    file: str
    mode: OpenFlag
    fd: int


@dataclass
class PipeCommand:
    """Connect the output of left to the input of right."""

    left: "Command"
    right: "Command"


@dataclass
class ListCommand:
    """Run left, wait for it, then run right."""

    left: "Command"
    right: "Command"


@dataclass
class BackCommand:
    """Run cmd without waiting for it."""

    cmd: "Command"


Command = Union[ExecCommand, RedirCommand, PipeCommand, ListCommand, BackCommand]


class Lexer:
    """Splits a command line into words and shell symbols."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in WHITESPACE:
            self.pos += 1

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    @property
    def rest(self) -> str:
        return self.text[self.pos:]

    def peek(self, toks: str) -> bool:
        """Skip whitespace and tell whether the next character is one of toks."""
        self._skip_whitespace()
        return not self.at_end and self.text[self.pos] in toks

    def gettoken(self) -> tuple[str, str]:
        """Consume one token and return (kind, text).

        kind is "" at the end of input, "a" for a word, "+" for ">>",
        and the symbol itself for any other shell symbol.
        """
        self._skip_whitespace()
        start = self.pos
        text = self.text
        if self.at_end:
            kind = ""
        else:
            ch = text[self.pos]
            kind = ch
            if ch in "|();&<":
                self.pos += 1
            elif ch == ">":
                self.pos += 1
                if self.pos < len(text) and text[self.pos] == ">":
                    kind = "+"
                    self.pos += 1
            else:
                kind = "a"
                while (self.pos < len(text)
                       and text[self.pos] not in WHITESPACE
                       and text[self.pos] not in SYMBOLS):
                    self.pos += 1
        token = text[start:self.pos]
        self._skip_whitespace()
        return kind, token


def parse_command(s: str) -> Command:
    """Parse a full command line into a command tree."""
    lexer = Lexer(s)
    cmd = _parse_line(lexer)
    lexer.peek("")
    if not lexer.at_end:
        raise ShellSyntaxError(f"leftovers: {lexer.rest}")
    return cmd


def _parse_line(lexer: Lexer) -> Command:
    cmd = _parse_pipe(lexer)
    while lexer.peek("&"):
        lexer.gettoken()
        cmd = BackCommand(cmd)
    if lexer.peek(";"):
        lexer.gettoken()
        cmd = ListCommand(cmd, _parse_line(lexer))
    return cmd


def _parse_pipe(lexer: Lexer) -> Command:
    cmd = _parse_exec(lexer)
    if lexer.peek("|"):
        lexer.gettoken()
        cmd = PipeCommand(cmd, _parse_pipe(lexer))
    return cmd


def _parse_redirs(cmd: Command, lexer: Lexer) -> Command:
    while lexer.peek("<>"):
        tok, _ = lexer.gettoken()
        kind, name = lexer.gettoken()
        if kind != "a":
            raise ShellSyntaxError("missing file for redirection")
        if tok == "<":
            cmd = RedirCommand(cmd, name, OpenFlag.O_RDONLY, 0)
        else:  # ">" and ">>" both truncate-or-create
            cmd = RedirCommand(cmd, name, OpenFlag.O_WRONLY | OpenFlag.O_CREATE, 1)
    return cmd


def _parse_block(lexer: Lexer) -> Command:
    if not lexer.peek("("):
        raise ShellSyntaxError("parseblock")
    lexer.gettoken()
    cmd = _parse_line(lexer)
    if not lexer.peek(")"):
        raise ShellSyntaxError("syntax - missing )")
    lexer.gettoken()
    return _parse_redirs(cmd, lexer)


def _parse_exec(lexer: Lexer) -> Command:
    if lexer.peek("("):
        return _parse_block(lexer)

    exec_cmd = ExecCommand()
    ret: Command = _parse_redirs(exec_cmd, lexer)
    while not lexer.peek("|)&;"):
        kind, word = lexer.gettoken()
        if kind == "":
            break
        if kind != "a":
            raise ShellSyntaxError("syntax")
        exec_cmd.argv.append(word)
        if len(exec_cmd.argv) >= MAXARGS:
            raise ShellSyntaxError("too many args")
        ret = _parse_redirs(ret, lexer)
    return ret