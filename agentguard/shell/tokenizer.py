"""Shell command tokenizer.

Turns a raw command line into a :class:`ParsedCommand`: quote-aware
splitting on whitespace and the ``&&``/``||``/``|``/``;`` operators,
variable and path expansion, and segment boundaries.
"""

from __future__ import annotations

import posixpath

from loguru import logger

from agentguard.core.environment import Environment
from agentguard.core.types import CommandSegment, ParsedCommand, Token, TokenType

# Placeholders survive quote-aware splitting and are restored afterwards.
_ESCAPED_SPACE = "\x00ESCAPED_SPACE\x00"
_ESCAPED_SEMICOLON = "\x00ESCAPED_SEMICOLON\x00"

CHAIN_OPERATORS = frozenset({"&&", "||", ";"})
PIPE_OPERATOR = "|"
OPERATORS = CHAIN_OPERATORS | {PIPE_OPERATOR}
REDIRECTS = frozenset({">", ">>"})

_WHITESPACE = frozenset(" \t\r")
_SIMPLE_ESCAPES = {"\\": "\\", '"': '"', "'": "'"}


def handle_escapes(raw: str) -> str:
    """Resolve backslash escapes in a single left-to-right scan.

    ``\\\\``, ``\\"`` and ``\\'`` collapse to the escaped character, an escaped
    space or semicolon becomes a placeholder, a backslash-newline is a line
    continuation, and unknown escapes are kept verbatim.
    """
    out: list[str] = []
    i = 0
    length = len(raw)
    while i < length:
        char = raw[i]
        if char != "\\" or i + 1 >= length:
            out.append(char)
            i += 1
            continue
        nxt = raw[i + 1]
        if nxt in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[nxt])
        elif nxt == " ":
            out.append(_ESCAPED_SPACE)
        elif nxt == ";":
            out.append(_ESCAPED_SEMICOLON)
        elif nxt == "\n":
            pass
        else:
            out.append(char + nxt)
        i += 2
    return "".join(out)


def restore_escapes(text: str) -> str:
    return text.replace(_ESCAPED_SPACE, " ").replace(_ESCAPED_SEMICOLON, ";")


def _read_operator(text: str, i: int) -> str | None:
    """Return the operator lexeme starting at ``i``, if any."""
    pair = text[i : i + 2]
    if pair in ("&&", "||"):
        return pair
    char = text[i]
    if char == "|":
        return "|"
    if char in (";", "\n"):
        return ";"
    return None


def split_words(text: str) -> list[tuple[str, str, int, bool]]:
    """Quote-aware split into ``(value, original, position, is_operator)`` tuples.

    Quote characters are removed from ``value`` and kept in ``original``.
    Inside quotes, whitespace and operators are literal. An unquoted newline
    or a lone ``&`` separates commands the way ``;`` does.
    """
    words: list[tuple[str, str, int, bool]] = []
    value: list[str] = []
    original: list[str] = []
    start = -1
    quote: str | None = None
    has_word = False

    def flush() -> None:
        nonlocal value, original, start, has_word
        if has_word:
            words.append(("".join(value), "".join(original), start, False))
        value, original, start, has_word = [], [], -1, False

    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        if quote is not None:
            original.append(char)
            if char == quote:
                quote = None
            else:
                value.append(char)
            i += 1
            continue
        if char in ("'", '"'):
            if not has_word:
                start, has_word = i, True
            quote = char
            original.append(char)
            i += 1
            continue
        if char in _WHITESPACE:
            flush()
            i += 1
            continue
        operator = _read_operator(text, i)
        if operator is None and char == "&":
            nxt = text[i + 1] if i + 1 < length else ""
            tail = original[-1] if original else ""
            # Part of a redirection such as 2>&1 or &>file.
            if tail not in (">", "<") and nxt != ">":
                operator = ";"
        if operator is not None:
            flush()
            lexeme = text[i : i + 2] if operator in ("&&", "||") else text[i]
            words.append((operator, lexeme, i, True))
            i += len(lexeme)
            continue
        if not has_word:
            start, has_word = i, True
        value.append(char)
        original.append(char)
        i += 1

    if quote is not None:
        logger.debug("Unterminated {} quote, treating remainder as literal", quote)
    flush()
    return words


class Tokenizer:
    """Tokenize raw command lines against an :class:`Environment`."""

    def __init__(self, env: Environment | None = None):
        self.env = env or Environment.from_process()

    def tokenize(self, raw: str) -> ParsedCommand:
        escaped = handle_escapes(raw)
        tokens: list[Token] = []
        expect_command = True
        for value, original, position, is_operator in split_words(escaped):
            if is_operator:
                tokens.append(Token(TokenType.OPERATOR, value, original, position))
                expect_command = True
                continue
            restored = restore_escapes(value)
            original_value = restore_escapes(original)
            if restored in REDIRECTS and original_value in REDIRECTS:
                tokens.append(Token(TokenType.REDIRECT, restored, original_value, position))
                continue
            token_type = TokenType.COMMAND if expect_command else TokenType.ARGUMENT
            expect_command = False
            tokens.append(Token(token_type, self.expand(restored), original_value, position))

        segments = split_segments(tokens)
        operators = [token.value for token in tokens if token.type is TokenType.OPERATOR]
        return ParsedCommand(
            original=raw,
            normalized=" ".join(token.value for token in tokens),
            tokens=tuple(tokens),
            segments=segments,
            is_chained=any(op in CHAIN_OPERATORS for op in operators),
            is_piped=PIPE_OPERATOR in operators,
        )

    def expand(self, value: str) -> str:
        """Expand variables, ``~`` and relative ``./``/``../`` paths in a token."""
        expanded = self.env.expand(value)
        if expanded.startswith(("./", "../")):
            return posixpath.normpath(posixpath.join(self.env.cwd, expanded))
        return expanded


def split_segments(tokens: list[Token]) -> tuple[CommandSegment, ...]:
    """Group tokens into segments; each operator closes the current one."""
    segments: list[CommandSegment] = []
    command: str | None = None
    args: list[str] = []
    for token in tokens:
        if token.type is TokenType.OPERATOR:
            if command is not None:
                segments.append(CommandSegment(command, tuple(args), token.value))
            command, args = None, []
        elif token.type is TokenType.REDIRECT:
            continue
        elif command is None:
            command = token.value
        else:
            args.append(token.value)
    if command is not None:
        segments.append(CommandSegment(command, tuple(args)))
    elif segments:
        # A trailing operator does not follow anything.
        last = segments[-1]
        segments[-1] = CommandSegment(last.command, last.args)
    return tuple(segments)


def tokenize(raw: str, env: Environment | None = None) -> ParsedCommand:
    return Tokenizer(env).tokenize(raw)
