"""Security rules and the finding model.

This module defines the severity scale, the Finding value type, the
RuleConfig capability the rules query, and the nine built-in detectors.
Every rule is a pure function of (command, config): rules hold no state and
all patterns and tables are compiled once at import time.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from re import Pattern
from typing import Any, Iterator, Optional, Protocol

from .charsets import (
    BIDI_CONTROL_CHARS,
    ESC,
    HOMOGLYPH_DESCRIPTIONS,
    ZERO_WIDTH_CHARS,
    escape_sequence_end,
    is_homoglyph_candidate,
    utf8_len,
)
from .urls import iter_url_matches

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Severity of a finding or of a whole result.

    Values double as CLI exit codes: PASS=0, WARN=10, BLOCK=20.

    Example:
        >>> Severity.BLOCK > Severity.WARN
        True
        >>> Severity.WARN.exit_code
        10
    """

    PASS = 0
    WARN = 10
    BLOCK = 20

    def __lt__(self, other):
        """Enable comparison for severity aggregation."""
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented

    def __le__(self, other):
        """Enable comparison for severity aggregation."""
        if self.__class__ is other.__class__:
            return self.value <= other.value
        return NotImplemented

    def __gt__(self, other):
        """Enable comparison for severity aggregation."""
        if self.__class__ is other.__class__:
            return self.value > other.value
        return NotImplemented

    def __ge__(self, other):
        """Enable comparison for severity aggregation."""
        if self.__class__ is other.__class__:
            return self.value >= other.value
        return NotImplemented

    @property
    def exit_code(self) -> int:
        """Process exit code for this severity."""
        return self.value

    @property
    def label(self) -> str:
        """Lowercase name used in machine-readable output."""
        return self.name.lower()


@dataclass(frozen=True)
class Finding:
    """A single rule hit.

    Attributes:
        rule_id: Stable rule identifier (e.g., "pipe-to-shell")
        severity: Severity of this hit
        token: Matched substring of the input
        issue: Human-readable description of the problem
        position: Byte offset of the match in the UTF-8 encoded input
        suggestion: Suggested remediation
    """

    rule_id: str
    severity: Severity
    token: str
    issue: str
    position: int
    suggestion: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict."""
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.label,
            "token": self.token,
            "issue": self.issue,
            "position": self.position,
            "suggestion": self.suggestion,
        }


class RuleConfig(Protocol):
    """Rule enablement policy supplied by the caller.

    Names are rule config keys such as "pipe_to_shell". Implementations
    should return True for names they know nothing about.
    """

    def enabled(self, rule_name: str) -> bool: ...


def byte_offset(text: str, index: int) -> int:
    """Convert a character index in text to a UTF-8 byte offset."""
    return len(text[:index].encode("utf-8", "surrogatepass"))


def _format_hex(char: str) -> str:
    return f"{ord(char):04X}"


class SecurityRule:
    """Base class for the built-in detectors.

    Subclasses set rule_id, config_key, description and suggestion, and
    implement _scan(). check() applies the enablement policy, so a disabled
    rule returns no findings without scanning.
    """

    rule_id: str = ""
    config_key: str = ""
    description: str = ""
    suggestion: str = ""

    def is_enabled(self, config: Optional[RuleConfig]) -> bool:
        """Return whether config allows this rule (None enables everything)."""
        return config is None or config.enabled(self.config_key)

    def check(self, command: str, config: Optional[RuleConfig] = None) -> list[Finding]:
        """Inspect command and return findings in match order."""
        if not self.is_enabled(config):
            logger.debug(f"Rule {self.rule_id} disabled by config")
            return []
        return self._scan(command)

    def _scan(self, command: str) -> list[Finding]:
        raise NotImplementedError

    def _finding(self, severity: Severity, token: str, issue: str, position: int) -> Finding:
        return Finding(
            rule_id=self.rule_id,
            severity=severity,
            token=token,
            issue=issue,
            position=position,
            suggestion=self.suggestion,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.rule_id!r})"


# Characters that end a token when walking outward from a homoglyph
_TOKEN_BOUNDARIES = frozenset(" |&;\n\"'")


def _word_bounds(text: str, index: int) -> tuple[int, int]:
    start = index
    while start > 0 and text[start - 1] not in _TOKEN_BOUNDARIES:
        start -= 1
    end = index
    while end < len(text) and text[end] not in _TOKEN_BOUNDARIES:
        end += 1
    return start, end


def _describe_homoglyph(char: str) -> str:
    latin = HOMOGLYPH_DESCRIPTIONS.get(char)
    if latin is not None:
        return f"Cyrillic '{char}' (U+{_format_hex(char)}) used instead of Latin '{latin}' (U+{_format_hex(latin)})"
    name = unicodedata.name(char, "")
    if name.startswith("CYRILLIC"):
        return f"Cyrillic character (U+{_format_hex(char)}) may look like Latin"
    if name.startswith("GREEK"):
        return f"Greek character (U+{_format_hex(char)}) may look like Latin"
    return f"non-ASCII character U+{_format_hex(char)} in command"


class UnicodeHomoglyphRule(SecurityRule):
    """Mixed-script look-alikes (e.g. Cyrillic '\u0430' in a Latin domain)."""

    rule_id = "unicode-homoglyph"
    config_key = "unicode_homoglyph"
    description = "Detects mixed scripts and homoglyphs (e.g. Cyrillic '\u0430' vs Latin 'a') used to spoof domains or commands."
    suggestion = "use ASCII-only domain"

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        position = 0
        token, word_end = "", -1
        for index, char in enumerate(command):
            if ord(char) > 0x7F and is_homoglyph_candidate(char):
                # Look-alikes in one word share a single token
                if index >= word_end:
                    word_start, word_end = _word_bounds(command, index)
                    token = command[word_start:word_end]
                findings.append(self._finding(Severity.WARN, token, _describe_homoglyph(char), position))
            position += utf8_len(char)
        return findings


class _CharacterSetRule(SecurityRule):
    """Flags every occurrence of a fixed set of characters."""

    characters: frozenset[str] = frozenset()
    severity = Severity.BLOCK
    issue_template = ""

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        position = 0
        for char in command:
            if char in self.characters:
                issue = self.issue_template.format(code=_format_hex(char))
                findings.append(self._finding(self.severity, char, issue, position))
            position += utf8_len(char)
        return findings


class ZeroWidthRule(_CharacterSetRule):
    """Zero-width and invisible characters that can hide a payload."""

    rule_id = "zero-width"
    config_key = "zero_width"
    description = "Detects zero-width and invisible Unicode (ZWSP, ZWJ, BOM) that can hide payloads."
    suggestion = "paste as plain text; remove hidden characters"
    characters = ZERO_WIDTH_CHARS
    issue_template = "zero-width or invisible character (U+{code}) detected"


class BidiControlsRule(_CharacterSetRule):
    """Bidirectional overrides that reorder how a command is displayed."""

    rule_id = "bidi-controls"
    config_key = "bidi_controls"
    description = "Detects BiDi override characters (RLO, LRO, FSI, PDI) that can reorder text and hide content."
    suggestion = "remove bidirectional override characters"
    characters = BIDI_CONTROL_CHARS
    issue_template = "BiDi control character (U+{code}) can reorder text"


class ANSIEscapeRule(SecurityRule):
    """Terminal escape sequences (ESC, 0x1B)."""

    rule_id = "ansi-escape"
    config_key = "ansi_escape"
    description = "Detects ANSI escape sequences that can deceive the terminal or inject output."
    suggestion = "paste as plain text"

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        index = command.find(ESC)
        while index != -1:
            end = escape_sequence_end(command, index)
            findings.append(
                self._finding(
                    Severity.WARN,
                    command[index:end],
                    "ESC (U+001B) control sequence detected",
                    byte_offset(command, index),
                )
            )
            index = command.find(ESC, end)
        return findings


class _PatternRule(SecurityRule):
    """Reports every non-overlapping match of each pattern, pattern by pattern."""

    patterns: tuple[Pattern, ...] = ()

    def _issue(self, pattern: Pattern, token: str) -> str:
        raise NotImplementedError

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        for pattern in self.patterns:
            for match in pattern.finditer(command):
                token = match.group(0)
                findings.append(
                    self._finding(Severity.WARN, token, self._issue(pattern, token), byte_offset(command, match.start()))
                )
        return findings


DOWNLOADER_PATTERN = re.compile(r"(curl|wget)\s", re.IGNORECASE)
SHELL_SINK_PATTERN = re.compile(r"\s*(bash|sh|zsh|dash|ksh|csh|tcsh)\b", re.IGNORECASE)


def iter_pipe_to_shell(command: str) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of each ``curl|wget ... | <shell>`` span.

    The spans are those of ``(curl|wget)\\s[^|]*\\|\\s*(bash|sh|...)\\b``,
    found in one pass: every downloader before a pipe reaches that same
    pipe, so when the pipe is not followed by a shell the search resumes
    after it instead of retrying each downloader.
    """
    pos = 0
    while True:
        downloader = DOWNLOADER_PATTERN.search(command, pos)
        if downloader is None:
            return
        pipe = command.find("|", downloader.end())
        if pipe == -1:
            return
        sink = SHELL_SINK_PATTERN.match(command, pipe + 1)
        if sink is None:
            pos = pipe + 1
            continue
        yield downloader.start(), sink.end()
        pos = sink.end()


class PipeToShellRule(SecurityRule):
    """Downloads piped straight into a shell (curl | bash)."""

    rule_id = "pipe-to-shell"
    config_key = "pipe_to_shell"
    description = "Flags curl|bash, wget|sh and similar patterns; suggests download-then-inspect."
    suggestion = "download, inspect, then execute"

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        for start, end in iter_pipe_to_shell(command):
            token = command[start:end]
            findings.append(self._finding(Severity.WARN, token, f"pattern: {token}", byte_offset(command, start)))
        return findings


# Order matters: each target reports at most its first occurrence
DOTFILE_TARGETS = (".bashrc", ".zshrc", ".profile", ".bash_profile", ".ssh/", ">>", ">")

_DOTFILE_PATTERNS = tuple((target, re.compile(re.escape(target), re.IGNORECASE)) for target in DOTFILE_TARGETS)


def _looks_like_write(line_before: str) -> bool:
    before = line_before.strip().lower()
    return before.endswith(">") or "echo" in before or "cat" in before


def _word_around(text: str, start: int, end: int) -> str:
    while start > 0 and text[start - 1] not in " \n":
        start -= 1
    while end < len(text) and text[end] not in " \n":
        end += 1
    return text[start:end]


class DotfileWriteRule(SecurityRule):
    """Writes to shell startup files or ~/.ssh.

    Mentions alone are not reported: the text before the match on the same
    line must end with a redirect or contain echo/cat.
    """

    rule_id = "dotfile-write"
    config_key = "dotfile_write"
    description = "Warns when command writes to .bashrc, .zshrc, .profile, .ssh, or similar."
    suggestion = "review before writing to dotfiles or .ssh"

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        for target, pattern in _DOTFILE_PATTERNS:
            match = pattern.search(command)
            if match is None:
                continue
            line_start = command.rfind("\n", 0, match.start()) + 1
            if not _looks_like_write(command[line_start : match.start()]):
                continue
            findings.append(
                self._finding(
                    Severity.WARN,
                    _word_around(command, match.start(), match.end()),
                    f"writes to: {target}",
                    byte_offset(command, match.start()),
                )
            )
        return findings


CRON_PATTERN = re.compile(r"(crontab\s|/etc/cron|/var/spool/cron)", re.IGNORECASE)
SYSTEMD_PATTERN = re.compile(r"(systemctl\s+(enable|start)|/etc/systemd)", re.IGNORECASE)
LAUNCHD_PATTERN = re.compile(r"(launchd|launchctl\s+load|~/Library/LaunchAgents)", re.IGNORECASE)
EVAL_PATTERN = re.compile(r"eval\s*(\$\s*)?\(")


class PersistencePatternsRule(_PatternRule):
    """Scheduler/service registration and eval-based dynamic execution."""

    rule_id = "persistence-patterns"
    config_key = "persistence_patterns"
    description = "Flags cron, systemd, launchd, and eval $(...) as potential persistence or code execution."
    suggestion = "review before enabling cron/systemd/launchd or using eval"
    patterns = (CRON_PATTERN, SYSTEMD_PATTERN, LAUNCHD_PATTERN, EVAL_PATTERN)

    def _issue(self, pattern: Pattern, token: str) -> str:
        if pattern is EVAL_PATTERN:
            return "eval $(...) can run arbitrary code"
        return f"suspicious persistence or dynamic execution: {token}"


SHORTENER_DOMAINS = (
    "bit.ly",
    "tinyurl.com",
    "t.co",
    "goo.gl",
    "ow.ly",
    "is.gd",
    "buff.ly",
    "adf.ly",
    "j.mp",
    "bc.vc",
    "bit.do",
    "lnkd.in",
    "db.tt",
    "short.link",
    "cutt.ly",
)


class ShortenerDomainsRule(SecurityRule):
    """URL shorteners and redirectors that hide the real download host."""

    rule_id = "shortener-domains"
    config_key = "shortener_domains"
    description = "Warns on URL shortener or redirect domains (e.g. bit.ly, tinyurl.com) in commands."
    suggestion = "use full URL or trusted source"

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        for index, url in iter_url_matches(command):
            lower = url.lower()
            domain = next((d for d in SHORTENER_DOMAINS if d in lower), None)
            if domain is None:
                continue
            findings.append(
                self._finding(
                    Severity.WARN,
                    url,
                    f"URL shortener or redirect domain: {domain}",
                    byte_offset(command, index),
                )
            )
        return findings


# (opener, closer, issue prefix). Single-level: a span ends at the first
# closer, so nested substitutions are cut short.
SUBSTITUTION_FORMS = (
    ("$(", ")", "command substitution or subshell"),
    ("`", "`", "command substitution or subshell"),
    ("<(", ")", "process substitution"),
)


def iter_delimited(command: str, opener: str, closer: str) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of each opener...closer span, left to right.

    An opener with no closer after it ends the search: no later opener can
    be closed either.
    """
    start = command.find(opener)
    while start != -1:
        close = command.find(closer, start + len(opener))
        if close == -1:
            return
        yield start, close + len(closer)
        start = command.find(opener, close + len(closer))


class SubshellCommandRule(SecurityRule):
    """Command substitution, backticks and process substitution."""

    rule_id = "subshell-command"
    config_key = "subshell_command"
    description = "Flags $(), backticks, and <( ) process substitution as hidden command execution."
    suggestion = "ensure substituted command is trusted"

    def _scan(self, command: str) -> list[Finding]:
        findings = []
        for opener, closer, label in SUBSTITUTION_FORMS:
            for start, end in iter_delimited(command, opener, closer):
                token = command[start:end]
                findings.append(self._finding(Severity.WARN, token, f"{label}: {token}", byte_offset(command, start)))
        return findings


# Declared order is the order findings appear in a Result
ALL_RULES: tuple[SecurityRule, ...] = (
    UnicodeHomoglyphRule(),
    ZeroWidthRule(),
    BidiControlsRule(),
    ANSIEscapeRule(),
    PipeToShellRule(),
    DotfileWriteRule(),
    PersistencePatternsRule(),
    ShortenerDomainsRule(),
    SubshellCommandRule(),
)

RULES_BY_ID: dict[str, SecurityRule] = {rule.rule_id: rule for rule in ALL_RULES}

DESCRIPTIONS: dict[str, str] = {rule.rule_id: rule.description for rule in ALL_RULES}


def get_rule(rule_id: str) -> Optional[SecurityRule]:
    """Look up a rule by its ID or its config key."""
    rule = RULES_BY_ID.get(rule_id)
    if rule is None:
        rule = next((r for r in ALL_RULES if r.config_key == rule_id), None)
    return rule


def describe(rule_id: str) -> str:
    """Return the description for a rule ID, or an empty string."""
    return DESCRIPTIONS.get(rule_id, "")
