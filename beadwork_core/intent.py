"""Intent grammar for beadwork commit messages.

Every mutating command commits with a one-line intent describing what it
did, e.g. ``close bw-a1b reason="duplicate"``. The same line is later
parsed to replay the change on top of someone else's history.

Grammar:

- tokens are separated by whitespace
- a ``"..."`` segment is part of the surrounding token; inside it ``\\"``,
  ``\\\\`` and ``\\n`` are escapes
- a token whose unquoted head looks like ``name=`` is a field, anything
  else is a positional argument
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from beadwork_core.exceptions import IntentSyntaxError

__all__ = [
    "INTENT_GRAMMAR_VERSION",
    "IntentVerb",
    "Intent",
    "parse_intent",
    "format_intent",
    "quote",
    "FIELD_NAME",
    "is_field_name",
]

INTENT_GRAMMAR_VERSION = 1

FIELD_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_.-]*")
_FIELD_HEAD = re.compile(rf"^{FIELD_NAME.pattern}=")
_NEEDS_QUOTES = re.compile(r'[\s"\\=]')
_ESCAPES = {'"': '"', "\\": "\\", "n": "\n"}


class IntentVerb(str, Enum):
    CREATE = "create"
    CLOSE = "close"
    REOPEN = "reopen"
    UPDATE = "update"
    START = "start"
    DEFER = "defer"
    UNDEFER = "undefer"
    LINK = "link"
    UNLINK = "unlink"
    LABEL = "label"
    DELETE = "delete"
    COMMENT = "comment"
    CONFIG = "config"
    # Recorded in history but never replayed
    INIT = "init"
    IMPORT = "import"
    UPGRADE = "upgrade"


@dataclass
class Intent:
    verb: IntentVerb
    args: List[str] = field(default_factory=list)
    fields: Dict[str, str] = field(default_factory=dict)
    raw: str = ""

    def arg(self, index: int) -> str:
        """Positional argument by index.

        Raises:
            IntentSyntaxError: If the intent has too few arguments
        """
        try:
            return self.args[index]
        except IndexError:
            raise IntentSyntaxError(f"malformed {self.verb.value} intent: {self.raw!r}") from None


def _tokenize(raw: str) -> List[Tuple[str, Optional[str]]]:
    """Split an intent into (text, field_name) pairs; field_name is None for positionals."""
    tokens: List[Tuple[str, Optional[str]]] = []
    text: List[str] = []
    head: List[str] = []
    in_token = False
    quoted = False
    in_quote = False

    def finish() -> None:
        value = "".join(text)
        match = None if quoted and not head else _FIELD_HEAD.match("".join(head))
        if match:
            name = match.group(0)[:-1]
            tokens.append((value[len(name) + 1:], name))
        else:
            tokens.append((value, None))

    chars = iter(raw)
    for ch in chars:
        if in_quote:
            if ch == "\\":
                escaped = next(chars, None)
                if escaped is None:
                    break
                text.append(_ESCAPES.get(escaped, "\\" + escaped))
            elif ch == '"':
                in_quote = False
            else:
                text.append(ch)
            continue

        if ch.isspace():
            if in_token:
                finish()
                text, head = [], []
                in_token = quoted = False
            continue

        in_token = True
        if ch == '"':
            in_quote = quoted = True
            continue
        text.append(ch)
        if not quoted:
            head.append(ch)

    if in_quote:
        raise IntentSyntaxError(f"unterminated quote in intent: {raw!r}")
    if in_token:
        finish()
    return tokens


def parse_intent(raw: str) -> Intent:
    """Parse one intent line.

    Args:
        raw: Intent text, usually a commit subject

    Returns:
        The parsed intent

    Raises:
        IntentSyntaxError: If the line is empty, has an unterminated quote
            or starts with an unknown verb
    """
    tokens = _tokenize(raw)
    if not tokens:
        raise IntentSyntaxError("empty intent")

    verb_text, verb_field = tokens[0]
    try:
        verb = IntentVerb(verb_text)
    except ValueError:
        raise IntentSyntaxError(f"unknown intent verb: {verb_text!r}") from None
    if verb_field is not None:
        raise IntentSyntaxError(f"unknown intent verb: {verb_field}={verb_text}")

    intent = Intent(verb=verb, raw=raw)
    for text, name in tokens[1:]:
        if name is None:
            intent.args.append(text)
        else:
            intent.fields[name] = text
    return intent


def is_field_name(name: str) -> bool:
    """True if ``name=value`` would parse back as a field named ``name``."""
    return FIELD_NAME.fullmatch(name) is not None


def quote(value: str) -> str:
    """Quote a token if it would not survive tokenizing unquoted."""
    if value and not _NEEDS_QUOTES.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def format_intent(verb: Union[IntentVerb, str], *args: str, **fields: str) -> str:
    """Build an intent line that parses back to the same verb, args and fields.

    Fields keep their keyword order.

    Examples:
        >>> format_intent("close", "bw-a1b", reason="dup of bw-x")
        'close bw-a1b reason="dup of bw-x"'
    """
    verb_text = verb.value if isinstance(verb, IntentVerb) else verb
    parts = [verb_text]
    parts.extend(quote(str(a)) for a in args)
    parts.extend(f"{name}={quote(str(value))}" for name, value in fields.items())
    return " ".join(parts)
