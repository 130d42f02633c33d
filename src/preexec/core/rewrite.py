"""Sanitizing rewrite of command text.

safe_rewrite() removes what the detectors flag as invisible or terminal
altering: escape sequences, zero-width and BiDi characters. Homoglyph
folding is opt-in because it changes visible text.
"""

import unicodedata
from typing import Union

from .charsets import ESC, HOMOGLYPH_TO_LATIN, INVISIBLE_CHARS, escape_sequence_end


def _decode(command: Union[str, bytes]) -> str:
    if isinstance(command, bytes):
        # Malformed sequences are dropped, never raised
        return command.decode("utf-8", errors="ignore")
    return command


def _is_surrogate(char: str) -> bool:
    return 0xD800 <= ord(char) <= 0xDFFF


def safe_rewrite(command: Union[str, bytes], normalize_homoglyphs: bool = False) -> str:
    """Return a safer version of command.

    - strips ANSI escape sequences (same span as the ansi-escape rule)
    - removes zero-width and BiDi control characters
    - optionally folds common Cyrillic look-alikes to Latin

    Undecodable bytes and lone surrogates are skipped.

    Example:
        >>> safe_rewrite("\\x1b[31mls\\u200b")
        '31mls'
    """
    text = _decode(command)
    out = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == ESC:
            index = escape_sequence_end(text, index)
            continue
        index += 1
        if char in INVISIBLE_CHARS or _is_surrogate(char):
            continue
        if normalize_homoglyphs:
            char = HOMOGLYPH_TO_LATIN.get(char, char)
        out.append(char)
    return "".join(out)


def strip_ansi(text: Union[str, bytes]) -> str:
    """Remove escape sequences (and invisible characters) from text."""
    return safe_rewrite(text, normalize_homoglyphs=False)


def visible_runes(text: Union[str, bytes]) -> int:
    """Count characters that occupy display space.

    Escape sequences, zero-width/BiDi characters and Cc control characters
    are not counted.
    """
    text = _decode(text)
    count = 0
    index = 0
    while index < len(text):
        char = text[index]
        if char == ESC:
            index = escape_sequence_end(text, index)
            continue
        index += 1
        if char in INVISIBLE_CHARS or _is_surrogate(char):
            continue
        if unicodedata.category(char) != "Cc":
            count += 1
    return count
