"""Tests for the built-in security rules."""

import re

import pytest

from preexec.core.rules import (
    ALL_RULES,
    DESCRIPTIONS,
    RULES_BY_ID,
    ANSIEscapeRule,
    BidiControlsRule,
    DotfileWriteRule,
    Finding,
    PersistencePatternsRule,
    PipeToShellRule,
    SecurityRule,
    Severity,
    ShortenerDomainsRule,
    SubshellCommandRule,
    ZeroWidthRule,
    byte_offset,
    describe,
    get_rule,
    iter_delimited,
    iter_pipe_to_shell,
)


class TestSeverity:
    """Test suite for Severity ordering and exit codes."""

    def test_ordering(self):
        """PASS < WARN < BLOCK."""
        assert Severity.PASS < Severity.WARN < Severity.BLOCK
        assert Severity.BLOCK >= Severity.BLOCK
        assert max([Severity.WARN, Severity.BLOCK, Severity.PASS]) is Severity.BLOCK

    @pytest.mark.parametrize(
        "severity,code,label",
        [
            (Severity.PASS, 0, "pass"),
            (Severity.WARN, 10, "warn"),
            (Severity.BLOCK, 20, "block"),
        ],
    )
    def test_exit_code_and_label(self, severity, code, label):
        """Exit codes are the CLI contract."""
        assert severity.exit_code == code
        assert severity.label == label

    def test_comparison_with_other_types(self):
        """Comparing against a non-Severity is unsupported."""
        with pytest.raises(TypeError):
            _ = Severity.WARN < 10


class TestFinding:
    """Test suite for the Finding value type."""

    def test_finding_immutable(self):
        """Findings are frozen."""
        finding = Finding("zero-width", Severity.BLOCK, "\u200b", "issue", 0, "fix")
        with pytest.raises(AttributeError):
            finding.position = 3

    def test_to_dict(self):
        """to_dict uses lowercase severity labels."""
        finding = Finding("pipe-to-shell", Severity.WARN, "curl x | sh", "pattern: curl x | sh", 0, "fix")
        assert finding.to_dict() == {
            "rule_id": "pipe-to-shell",
            "severity": "warn",
            "token": "curl x | sh",
            "issue": "pattern: curl x | sh",
            "position": 0,
            "suggestion": "fix",
        }


class TestRegistry:
    """Test suite for the rule registry."""

    def test_declared_order(self):
        """Rules are registered in a fixed order."""
        assert [rule.rule_id for rule in ALL_RULES] == [
            "unicode-homoglyph",
            "zero-width",
            "bidi-controls",
            "ansi-escape",
            "pipe-to-shell",
            "dotfile-write",
            "persistence-patterns",
            "shortener-domains",
            "subshell-command",
        ]

    def test_config_keys_are_snake_case_ids(self):
        """Each config key is the rule ID with underscores."""
        for rule in ALL_RULES:
            assert rule.config_key == rule.rule_id.replace("-", "_")

    def test_every_rule_has_description_and_suggestion(self):
        """Descriptions feed `preexec explain`."""
        for rule in ALL_RULES:
            assert rule.description
            assert rule.suggestion
            assert DESCRIPTIONS[rule.rule_id] == rule.description

    @pytest.mark.parametrize("name", ["pipe-to-shell", "pipe_to_shell"])
    def test_get_rule_by_id_or_config_key(self, name):
        """get_rule accepts both spellings."""
        assert get_rule(name) is RULES_BY_ID["pipe-to-shell"]

    def test_unknown_rule(self):
        """Unknown names return None / empty description."""
        assert get_rule("no-such-rule") is None
        assert describe("no-such-rule") == ""

    def test_base_rule_requires_scan(self):
        """SecurityRule itself does not scan."""
        with pytest.raises(NotImplementedError):
            SecurityRule().check("ls")


class TestByteOffset:
    """Test suite for character index to byte offset conversion."""

    @pytest.mark.parametrize(
        "text,index,expected",
        [
            ("ls -la", 3, 3),
            ("\u0430bc", 1, 2),
            ("\u200bx", 1, 3),
            ("\U0001f600x", 1, 4),
        ],
    )
    def test_byte_offset(self, text, index, expected):
        """Offsets count UTF-8 bytes."""
        assert byte_offset(text, index) == expected


class TestUnicodeHomoglyph:
    """Test suite for the unicode-homoglyph rule."""

    rule = RULES_BY_ID["unicode-homoglyph"]

    def test_cyrillic_in_domain(self):
        """Cyrillic 'a' in a URL is reported with its whole token."""
        findings = self.rule.check("curl https://ex\u0430mple.com")
        assert len(findings) == 1
        finding = findings[0]
        assert finding.severity is Severity.WARN
        assert finding.token == "https://ex\u0430mple.com"
        assert finding.position == 15
        assert finding.issue == "Cyrillic '\u0430' (U+0430) used instead of Latin 'a' (U+0061)"
        assert finding.suggestion == "use ASCII-only domain"

    def test_one_finding_per_character(self):
        """Two look-alikes in one word give two findings with the same token."""
        findings = self.rule.check("\u0441\u0430t file")
        assert [f.position for f in findings] == [0, 2]
        assert {f.token for f in findings} == {"\u0441\u0430t"}

    def test_token_stops_at_shell_delimiters(self):
        """Tokens end at spaces, pipes, semicolons and quotes."""
        findings = self.rule.check("echo 'x\u043ey';ls")
        assert findings[0].token == "x\u043ey"

    @pytest.mark.parametrize(
        "command,issue",
        [
            ("\u0432in", "Cyrillic character (U+0432) may look like Latin"),
            ("\u03bfpen", "Greek character (U+03BF) may look like Latin"),
            ("\u0585k", "non-ASCII character U+0585 in command"),
        ],
    )
    def test_issue_wording(self, command, issue):
        """Issues name the script when the character is not in the table."""
        assert self.rule.check(command)[0].issue == issue

    @pytest.mark.parametrize(
        "command",
        [
            "ls -la /tmp",
            "echo caf\u00e9",
            "echo \u4f60\u597d",
            "echo \U0001f600",
        ],
    )
    def test_other_scripts_ignored(self, command):
        """Latin-1, CJK and emoji are not homoglyph candidates."""
        assert self.rule.check(command) == []


class TestInvisibleCharacters:
    """Test suite for zero-width and bidi-controls rules."""

    @pytest.mark.parametrize("char", ["\u200b", "\u200c", "\u200d", "\ufeff", "\u2060", "\u180e"])
    def test_zero_width_blocks(self, char):
        """Every zero-width character is a BLOCK finding."""
        findings = ZeroWidthRule().check(f"ls{char} -la")
        assert len(findings) == 1
        assert findings[0].severity is Severity.BLOCK
        assert findings[0].token == char
        assert findings[0].position == 2
        assert findings[0].issue == f"zero-width or invisible character (U+{ord(char):04X}) detected"

    @pytest.mark.parametrize("char", ["\u202e", "\u202d", "\u2066", "\u2069"])
    def test_bidi_blocks(self, char):
        """Every BiDi control is a BLOCK finding."""
        findings = BidiControlsRule().check(f"echo {char}gnp.exe")
        assert len(findings) == 1
        assert findings[0].severity is Severity.BLOCK
        assert findings[0].position == 5
        assert findings[0].issue == f"BiDi control character (U+{ord(char):04X}) can reorder text"

    def test_position_after_multibyte(self):
        """Positions count bytes of preceding multibyte characters."""
        findings = ZeroWidthRule().check("\u0430\u200b")
        assert findings[0].position == 2

    def test_every_occurrence_reported(self):
        """Repeated characters are reported individually."""
        findings = ZeroWidthRule().check("a\u200bb\u200bc")
        assert [f.position for f in findings] == [1, 5]


class TestANSIEscape:
    """Test suite for the ansi-escape rule."""

    rule = ANSIEscapeRule()

    def test_color_sequences(self):
        """Each ESC is one finding; '[' is already a final character."""
        findings = self.rule.check("echo \x1b[31mred\x1b[0m")
        assert [(f.token, f.position) for f in findings] == [("\x1b[", 5), ("\x1b[", 13)]
        assert findings[0].issue == "ESC (U+001B) control sequence detected"
        assert findings[0].severity is Severity.WARN

    def test_span_runs_to_bel(self):
        """Characters below 0x40 are consumed up to BEL."""
        findings = self.rule.check("\x1b0;1\x07ls")
        assert [f.token for f in findings] == ["\x1b0;1\x07"]

    def test_osc_introducer_ends_span(self):
        """']' falls in 0x40-0x7E, so an OSC title is a two-character token."""
        findings = self.rule.check("\x1b]0;pwned\x07ls")
        assert [f.token for f in findings] == ["\x1b]"]

    def test_trailing_escape(self):
        """A lone ESC at the end is still reported."""
        findings = self.rule.check("ls\x1b")
        assert findings[0].token == "\x1b"
        assert findings[0].position == 2

    def test_lookahead_bounded(self):
        """An unterminated sequence stops after the lookahead window."""
        findings = self.rule.check("\x1b" + "1;" * 100 + "m")
        assert len(findings) == 1
        assert len(findings[0].token) == 65

    def test_scan_resumes_after_cap(self):
        """A later ESC past a capped span is reported on its own."""
        findings = self.rule.check("\x1b" + "1" * 70 + "\x1bM")
        assert [(f.token, f.position) for f in findings] == [("\x1b" + "1" * 64, 0), ("\x1bM", 71)]

    def test_no_escape(self):
        """Plain text has no findings."""
        assert self.rule.check("ls -la") == []


class TestPipeToShell:
    """Test suite for the pipe-to-shell rule."""

    rule = PipeToShellRule()

    @pytest.mark.parametrize(
        "command",
        [
            "curl -sSL https://example.com/install.sh | bash",
            "wget -qO- http://example.com/x|sh",
            "CURL https://example.com | ZSH",
            "curl -fsSL https://example.com | dash",
        ],
    )
    def test_detected(self, command):
        """Downloads piped into a shell are flagged with the full match."""
        findings = self.rule.check(command)
        assert len(findings) == 1
        assert findings[0].token == command
        assert findings[0].issue == f"pattern: {command}"
        assert findings[0].position == 0

    @pytest.mark.parametrize(
        "command",
        [
            "curl -o install.sh https://example.com/install.sh",
            "curl https://example.com | tee out.txt",
            "cat install.sh | bash",
            "ls -la /tmp",
        ],
    )
    def test_not_detected(self, command):
        """Downloads without a shell sink are not flagged."""
        assert self.rule.check(command) == []

    @pytest.mark.parametrize(
        "command",
        [
            "curl a | tee x; wget b |sh",
            "curl a curl b | sh",
            "CURL x | ZSH && wget -q y|\tksh",
            "curl x | shell; curl y | sh",
            "curl|bash curl z | sh",
            "curl a |curl b | sh",
            "curl x\n| bash",
            "wget" + " " * 50,
        ],
    )
    def test_spans_match_regex_scan(self, command):
        """The single-pass scanner finds the same spans as a regex scan."""
        pattern = re.compile(r"(curl|wget)\s[^|]*\|\s*(bash|sh|zsh|dash|ksh|csh|tcsh)\b", re.IGNORECASE)
        assert list(iter_pipe_to_shell(command)) == [m.span() for m in pattern.finditer(command)]

    def test_positions_of_multiple_matches(self):
        """Each match reports its own byte position."""
        findings = self.rule.check("curl a | sh; wget b | bash")
        assert [(f.token, f.position) for f in findings] == [("curl a | sh", 0), ("wget b | bash", 13)]


class TestDotfileWrite:
    """Test suite for the dotfile-write rule."""

    rule = DotfileWriteRule()

    def test_append_to_bashrc(self):
        """echo ... >> ~/.bashrc reports the target and the redirects."""
        findings = self.rule.check("echo 'alias ls=rm' >> ~/.bashrc")
        assert [(f.issue, f.token, f.position) for f in findings] == [
            ("writes to: .bashrc", "~/.bashrc", 24),
            ("writes to: >>", ">>", 19),
            ("writes to: >", ">>", 19),
        ]

    def test_ssh_authorized_keys(self):
        """Writes into ~/.ssh/ are flagged."""
        findings = self.rule.check("cat key.pub > ~/.ssh/authorized_keys")
        issues = [f.issue for f in findings]
        assert "writes to: .ssh/" in issues
        assert "writes to: >" in issues

    @pytest.mark.parametrize(
        "command",
        [
            "vim ~/.bashrc",
            "ls -la ~/.ssh/",
            "source ~/.profile",
        ],
    )
    def test_mentions_without_write(self, command):
        """Reading or editing a dotfile is not a write."""
        assert self.rule.check(command) == []

    def test_only_same_line_counts(self):
        """A command on a previous line does not make this line a write."""
        assert self.rule.check("echo hi\nvim ~/.zshrc") == []


class TestPersistencePatterns:
    """Test suite for the persistence-patterns rule."""

    rule = PersistencePatternsRule()

    @pytest.mark.parametrize(
        "command,token",
        [
            ("crontab -e", "crontab "),
            ("cp job /etc/cron.d/job", "/etc/cron"),
            ("sudo systemctl enable evil.service", "systemctl enable"),
            ("cp x.service /etc/systemd/system/", "/etc/systemd"),
            ("launchctl load x.plist", "launchctl load"),
        ],
    )
    def test_persistence(self, command, token):
        """Scheduler and service registration is flagged."""
        findings = self.rule.check(command)
        assert findings[0].token == token
        assert findings[0].issue == f"suspicious persistence or dynamic execution: {token}"

    def test_eval(self):
        """eval $( gets its own issue text."""
        findings = self.rule.check("eval $(curl -s https://example.com/env)")
        assert len(findings) == 1
        assert findings[0].token == "eval $("
        assert findings[0].issue == "eval $(...) can run arbitrary code"

    @pytest.mark.parametrize("command,token", [("eval (x)", "eval ("), ("eval $ (x)", "eval $ ("), ("eval$(x)", "eval$(")])
    def test_eval_spacing(self, command, token):
        """Whitespace around the dollar sign is allowed."""
        assert [f.token for f in self.rule.check(command)] == [token]

    def test_findings_grouped_by_pattern(self):
        """Matches are reported pattern by pattern, not by position."""
        findings = self.rule.check("eval $(x); crontab -l")
        assert [f.token for f in findings] == ["crontab ", "eval $("]

    def test_plain_command(self):
        """Ordinary commands are not flagged."""
        assert self.rule.check("systemctl status nginx") == []


class TestShortenerDomains:
    """Test suite for the shortener-domains rule."""

    rule = ShortenerDomainsRule()

    @pytest.mark.parametrize(
        "url,domain",
        [
            ("https://bit.ly/abc", "bit.ly"),
            ("http://tinyurl.com/x", "tinyurl.com"),
            ("https://cutt.ly/y", "cutt.ly"),
            ("https://BIT.LY/abc", "bit.ly"),
        ],
    )
    def test_shorteners(self, url, domain):
        """The URL is the token and the domain is named in the issue."""
        findings = self.rule.check(f"curl -sSL {url} | sh")
        assert len(findings) == 1
        assert findings[0].token == url
        assert findings[0].position == 10
        assert findings[0].issue == f"URL shortener or redirect domain: {domain}"

    def test_full_urls_ignored(self):
        """Ordinary hosts are not shorteners."""
        assert self.rule.check("curl https://example.com/install.sh") == []

    def test_substring_match(self):
        """Domains match anywhere in the URL, so t.co hits microsoft.com."""
        findings = self.rule.check("curl https://microsoft.com/x")
        assert [f.issue for f in findings] == ["URL shortener or redirect domain: t.co"]

    def test_bare_domain_without_scheme(self):
        """Only http(s) URLs are inspected."""
        assert self.rule.check("echo bit.ly/abc") == []


class TestSubshellCommand:
    """Test suite for the subshell-command rule."""

    rule = SubshellCommandRule()

    def test_nested_substitution_is_single_level(self):
        """The match stops at the first closing parenthesis."""
        findings = self.rule.check("echo $(echo $(whoami))")
        assert len(findings) == 1
        assert findings[0].token == "$(echo $(whoami)"
        assert findings[0].position == 5
        assert findings[0].issue == "command substitution or subshell: $(echo $(whoami)"

    def test_backticks(self):
        """Backtick substitution is flagged."""
        findings = self.rule.check("echo `id`")
        assert findings[0].token == "`id`"

    def test_process_substitution(self):
        """Each <( ) is its own finding with its own issue."""
        findings = self.rule.check("diff <(ls a) <(ls b)")
        assert [f.issue for f in findings] == [
            "process substitution: <(ls a)",
            "process substitution: <(ls b)",
        ]

    def test_plain_command(self):
        """No substitution, no findings."""
        assert self.rule.check("ls -la /tmp") == []

    @pytest.mark.parametrize(
        "command,opener,closer,pattern",
        [
            ("echo $(a $(b) c) $(d", "$(", ")", r"\$\([^)]*\)"),
            ("a `b` c `d` `e", "`", "`", r"`[^`]*`"),
            ("diff <(ls a) <(ls b", "<(", ")", r"<\([^)]*\)"),
            ("$($($(", "$(", ")", r"\$\([^)]*\)"),
        ],
    )
    def test_spans_match_regex_scan(self, command, opener, closer, pattern):
        """Delimited spans equal a regex scan that stops at the first closer."""
        expected = [m.span() for m in re.finditer(pattern, command)]
        assert list(iter_delimited(command, opener, closer)) == expected

    def test_unclosed_opener(self):
        """An opener with no closer is not reported."""
        assert self.rule.check("echo $(whoami") == []


class TestEnablement:
    """Test suite for config-driven rule enablement."""

    def test_disabled_rule_returns_nothing(self, disabled_rules):
        """A disabled rule does not scan."""
        rule = PipeToShellRule()
        assert rule.check("curl https://x.io | bash", disabled_rules("pipe_to_shell")) == []

    def test_none_enables_everything(self):
        """No config means every rule runs."""
        assert PipeToShellRule().is_enabled(None)

    def test_other_rules_unaffected(self, disabled_rules):
        """Disabling one rule leaves the others alone."""
        config = disabled_rules("pipe_to_shell")
        assert ZeroWidthRule().check("a\u200b", config)
