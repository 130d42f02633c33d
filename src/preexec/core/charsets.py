"""Character tables shared by the detectors and the rewriter.

All tables are module-level constants built once at import time.
"""

# Invisible characters that can hide a payload inside visible text
ZERO_WIDTH_CHARS = frozenset(
    {
        "\u200b",  # ZERO WIDTH SPACE
        "\u200c",  # ZERO WIDTH NON-JOINER
        "\u200d",  # ZERO WIDTH JOINER
        "\ufeff",  # BOM / ZERO WIDTH NO-BREAK SPACE
        "\u2060",  # WORD JOINER
        "\u180e",  # MONGOLIAN VOWEL SEPARATOR
    }
)

# Directional controls that reorder displayed text
BIDI_CONTROL_CHARS = frozenset(
    {
        "\u202e",  # RIGHT-TO-LEFT OVERRIDE
        "\u202d",  # LEFT-TO-RIGHT OVERRIDE
        "\u2066",  # LEFT-TO-RIGHT ISOLATE
        "\u2069",  # POP DIRECTIONAL ISOLATE
    }
)

INVISIBLE_CHARS = ZERO_WIDTH_CHARS | BIDI_CONTROL_CHARS

# Script blocks whose letters are commonly mistaken for Latin
HOMOGLYPH_BLOCKS = (
    (0x0400, 0x04FF),  # Cyrillic
    (0x0370, 0x03FF),  # Greek and Coptic
    (0x0530, 0x058F),  # Armenian
)

# Look-alikes that get an explicit "used instead of Latin" message
HOMOGLYPH_DESCRIPTIONS = {
    "\u0430": "a",
    "\u0435": "e",
    "\u043e": "o",
    "\u0440": "p",
    "\u0441": "c",
    "\u0443": "y",
    "\u0445": "x",
    "\u0501": "d",
}

# Folding table for safe_rewrite(normalize_homoglyphs=True)
HOMOGLYPH_TO_LATIN = {
    "\u0430": "a",
    "\u0435": "e",
    "\u043e": "o",
    "\u043f": "p",
    "\u0441": "c",
    "\u0443": "y",
    "\u0445": "x",
    "\u0501": "d",
    "\u0432": "b",
    "\u0437": "z",
    "\u0438": "u",
    "\u0439": "i",
    "\u043a": "k",
    "\u043c": "m",
    "\u043d": "n",
    "\u0433": "g",
    "\u0442": "t",
    "\u0440": "r",
    "\u0444": "f",
}

ESC = "\x1b"
BEL = "\x07"

# Maximum byte span of one escape sequence, ESC included
ESCAPE_LOOKAHEAD = 64


def is_homoglyph_candidate(char: str) -> bool:
    """Return True if char falls in a Cyrillic, Greek or Armenian block."""
    code = ord(char)
    return any(low <= code <= high for low, high in HOMOGLYPH_BLOCKS)


def utf8_len(char: str) -> int:
    """Byte length of a single character in UTF-8 (lone surrogates count as 3)."""
    code = ord(char)
    if code < 0x80:
        return 1
    if code < 0x800:
        return 2
    if code < 0x10000:
        return 3
    return 4


def escape_sequence_end(text: str, start: int) -> int:
    """Return the index just past the escape sequence starting at text[start].

    text[start] must be ESC. The span ends after the first character in
    0x40-0x7E, BEL or newline, so a CSI introducer ('[') already ends it.
    Consumption stops once the span exceeds ESCAPE_LOOKAHEAD bytes.

    Example:
        >>> escape_sequence_end("\\x1bMls", 0)
        2
    """
    end = start + 1
    size = 1
    while end < len(text):
        char = text[end]
        end += 1
        if 0x40 <= ord(char) <= 0x7E or char in (BEL, "\n"):
            break
        size += utf8_len(char)
        if size > ESCAPE_LOOKAHEAD:
            break
    return end
