"""
Text cleaning for model reasoning and final result messages.

Models frequently hand back reasoning wrapped in JSON fragments
(``{"reasoning": "..."}``), quoted, prefixed with the tool argument name, or
polluted with control characters and ``<ctrlNN>`` tags. Everything here is
pure and never raises.
"""
from __future__ import annotations

import re
from typing import Any, Optional

DEFAULT_SUCCESS_MESSAGE = "Task completed successfully"
DEFAULT_FAILURE_MESSAGE = "Task did not complete successfully"

_ANSI_RE = re.compile(r'\x1b\[[0-9;?]*[A-Za-z]')
# C0/C1 control characters except tab, newline and carriage return
_CONTROL_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')
_CTRL_TAG_RE = re.compile(r'[<\[]\s*/?\s*ctrl\d*\s*/?\s*[>\]]', re.IGNORECASE)
_ESCAPES = (('\\r\\n', '\n'), ('\\n', '\n'), ('\\t', ' '), ('\\"', '"'), ("\\'", "'"))

_REASONING_PREFIX_RE = re.compile(r'^\{\s*["\']?reasoning["\']?\s*:\s*', re.IGNORECASE)
_FIELD_PREFIX_RE = re.compile(r'^["\']?(?:thought|text|input)["\']?\s*:\s*', re.IGNORECASE)
_EDGE_BRACKETS_RE = re.compile(r'^[\s{}\[\]]+|[\s{}\[\]]+$')
_INLINE_SPACE_RE = re.compile(r'[ \t]+')
_EXTRA_NEWLINES_RE = re.compile(r'\n{3,}')
_ALL_WHITESPACE_RE = re.compile(r'\s+')


def strip_control_chars(text: Any) -> str:
    """Remove ANSI escapes, control characters and ctrl tags; keeps newlines and tabs."""
    if not isinstance(text, str) or not text:
        return ''
    text = _ANSI_RE.sub('', text)
    text = _CTRL_TAG_RE.sub('', text)
    return _CONTROL_CHARS_RE.sub('', text)


def _normalize_pass(text: str) -> str:
    text = strip_control_chars(text)
    for escaped, plain in _ESCAPES:
        text = text.replace(escaped, plain)
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = text.strip()
    text = _REASONING_PREFIX_RE.sub('', text)
    text = _EDGE_BRACKETS_RE.sub('', text)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in '"\'':
        text = text[1:-1].strip()
    text = _FIELD_PREFIX_RE.sub('', text)
    text = _INLINE_SPACE_RE.sub(' ', text)
    text = _EXTRA_NEWLINES_RE.sub('\n\n', text)
    return '\n'.join(line.strip() for line in text.split('\n')).strip()


def normalize_reasoning(raw: Any) -> str:
    """Return display-safe reasoning text.

    The cleaning pass is applied until the text stops changing, which makes the
    function idempotent. Each pass only removes characters (or turns a tab into
    a space), so the loop terminates.
    """
    if not isinstance(raw, str) or not raw:
        return ''
    current = raw
    while True:
        cleaned = _normalize_pass(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def sanitize_result_message(message: Optional[str], success: bool) -> str:
    """Strip control noise from the engine's final message.

    Falls back to a generic success/failure message when nothing legible is left.
    """
    cleaned = _ALL_WHITESPACE_RE.sub(' ', strip_control_chars(message)).strip()
    if cleaned:
        return cleaned
    return DEFAULT_SUCCESS_MESSAGE if success else DEFAULT_FAILURE_MESSAGE
