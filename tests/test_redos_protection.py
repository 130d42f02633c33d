"""Tests that every rule scans pathological input in linear time.

The shell hook runs preexec on every command, so a pasted line must never
stall the terminal. Each input below is large enough that a backtracking
or per-position rescan (quadratic or worse) would blow the time limit.
"""

import time

import pytest

from preexec.core.engine import run
from preexec.core.rewrite import safe_rewrite, visible_runes
from preexec.core.rules import (
    RULES_BY_ID,
    PersistencePatternsRule,
    PipeToShellRule,
    SubshellCommandRule,
)

N = 100_000


def _timed(func, *args):
    start = time.time()
    result = func(*args)
    return result, time.time() - start


class TestReDoSProtection:
    """Test that rules complete quickly even with pathological inputs."""

    MAX_CHECK_TIME = 1.0  # Maximum 1 second per check

    def test_downloader_followed_by_whitespace(self):
        """curl plus a long run of spaces and no pipe."""
        findings, elapsed = _timed(PipeToShellRule().check, "curl" + " " * N)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for curl + spaces"
        assert findings == []

    def test_many_downloaders_without_pipe(self):
        """Every curl would rescan to the end of the line."""
        findings, elapsed = _timed(PipeToShellRule().check, "curl " * (N // 5))
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for repeated curl"
        assert findings == []

    def test_many_pipes_without_shell_sink(self):
        """Pipes into non-shells are skipped one at a time."""
        findings, elapsed = _timed(PipeToShellRule().check, "curl a | cat " * (N // 13))
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for curl | cat chains"
        assert findings == []

    def test_many_matches(self):
        """Many real matches are each reported once."""
        command = "curl a | sh; " * 5000
        findings, elapsed = _timed(PipeToShellRule().check, command)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for many matches"
        assert len(findings) == 5000

    def test_eval_followed_by_whitespace(self):
        """eval plus a long run of spaces and no parenthesis."""
        findings, elapsed = _timed(PersistencePatternsRule().check, "eval" + " " * N)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for eval + spaces"
        assert findings == []

    def test_systemctl_followed_by_whitespace(self):
        """systemctl plus a long run of spaces."""
        _, elapsed = _timed(PersistencePatternsRule().check, "systemctl" + " " * N)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for systemctl + spaces"

    @pytest.mark.parametrize("command", ["$(" * (N // 2), "<(" * (N // 2), "`" + "a" * N])
    def test_unclosed_substitutions(self, command):
        """Repeated openers with no closer."""
        findings, elapsed = _timed(SubshellCommandRule().check, command)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for unclosed {command[:2]!r}"
        assert findings == []

    def test_long_homoglyph_word(self):
        """One long Cyrillic word is measured once, not once per character."""
        findings, elapsed = _timed(RULES_BY_ID["unicode-homoglyph"].check, "\u0430" * (N // 4))
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for long Cyrillic word"
        assert len(findings) == N // 4
        assert len({id(f.token) for f in findings}) == 1

    def test_unterminated_escapes(self):
        """Escape spans are capped at the lookahead window."""
        command = ("\x1b" + "1" * 80) * 1000
        findings, elapsed = _timed(RULES_BY_ID["ansi-escape"].check, command)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for unterminated escapes"
        assert len(findings) == 1000

    def test_long_url(self):
        """A very long URL host."""
        _, elapsed = _timed(RULES_BY_ID["shortener-domains"].check, "curl https://" + "a" * N)
        assert elapsed < self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s for long URL"

    @pytest.mark.parametrize(
        "command",
        [
            "curl" + " " * N,
            "curl " * (N // 5),
            "eval" + " " * N,
            "$(" * (N // 2),
            "echo " + "\u200b" * (N // 4),
            "\x1b" * N,
        ],
    )
    def test_engine_and_rewrite(self, command):
        """The full engine and the rewriter stay linear too."""
        start = time.time()
        run(command)
        safe_rewrite(command)
        visible_runes(command)
        elapsed = time.time() - start
        assert elapsed < 3 * self.MAX_CHECK_TIME, f"ReDoS detected: {elapsed:.3f}s in engine/rewrite"
