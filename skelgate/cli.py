"""skelgate command line.

Usage::

    skelgate instantiate python-package ./my-lib --var project_name="My Lib"
    skelgate check --concurrency 4 --only tests --only spelling
    skelgate templates
    skelgate checks

Exit codes (``instantiate``): 0 success, 2 validation error, 3 path escape,
4 partial write.  Exit codes (``check``): 0 passed, 1 failed, 2 invalid
check declarations.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.prompt import Prompt
from rich.table import Table

from skelgate.checks import Check, CheckRegistry, PipelineOrchestrator, RunReport, default_registry
from skelgate.config import Config
from skelgate.errors import (
    CollisionDetected,
    PartialWrite,
    PathEscape,
    RegistryError,
    ResolutionError,
    TemplateStoreError,
)
from skelgate.scaffolder import (
    InstantiationEngine,
    TemplateStore,
    VariableSpec,
    collect,
    parse_var_args,
    resolve,
)
from skelgate.utils import (
    OUTCOME_STYLES,
    console,
    format_duration,
    print_error,
    print_section_header,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
)

EXIT_OK = 0
EXIT_CHECKS_FAILED = 1
EXIT_VALIDATION = 2
EXIT_PATH_ESCAPE = 3
EXIT_PARTIAL_WRITE = 4


# ---------------------------------------------------------------------------
# instantiate
# ---------------------------------------------------------------------------


def _prompt_for(spec: VariableSpec, default: Optional[str]) -> str:
    """Ask for one variable on the terminal."""
    label = spec.description or spec.name
    if default is None:
        return Prompt.ask(f"[cyan]{label}[/cyan]", choices=spec.choices or None, console=console)
    return Prompt.ask(
        f"[cyan]{label}[/cyan]",
        default=default,
        choices=spec.choices or None,
        console=console,
    )


def _template_store(config: Config, extra_dirs: Sequence[str]) -> TemplateStore:
    return TemplateStore([*(Path(d) for d in extra_dirs), *config.scaffold.templates_dirs])


def cmd_instantiate(args: argparse.Namespace, config: Config) -> int:
    store = _template_store(config, args.templates_dir)
    interactive = config.scaffold.interactive and not args.no_input and sys.stdin.isatty()

    try:
        supplied = parse_var_args(args.var)
        skeleton = store.get(args.template_id)
        values = collect(
            skeleton.manifest.variables,
            supplied,
            prompt=_prompt_for if interactive else None,
        )
        table = resolve(skeleton.placeholders, values)
        report = asyncio.run(
            InstantiationEngine(store.renderer).instantiate(
                skeleton,
                table,
                args.target_dir,
                overwrite=args.overwrite or config.scaffold.overwrite,
            )
        )
    except (ResolutionError, TemplateStoreError, CollisionDetected) as exc:
        print_error(f"Error: {exc}")
        return EXIT_VALIDATION
    except PathEscape as exc:
        print_error(f"Error: {exc}")
        return EXIT_PATH_ESCAPE
    except PartialWrite as exc:
        print_error(f"Error: {exc}")
        if exc.completed:
            print_warning("Paths written before the failure (not rolled back):")
            for path in exc.completed:
                console.print(f"  {path}", markup=False)
        return EXIT_PARTIAL_WRITE

    print_summary_table(
        {
            "Template": report.template_id,
            "Target": str(report.target_dir),
            "Files written": str(len(report.files)),
            "Duration": format_duration(report.duration_seconds),
        },
        title="Instantiated",
    )
    print_success(f"Project created at {report.target_dir}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


def _load_registry(config: Config, check_file: Optional[str]) -> CheckRegistry:
    path = Path(check_file) if check_file else config.checks_path
    if path.is_file():
        return CheckRegistry.from_file(path)
    if check_file:
        raise RegistryError(f"Check file not found: {path}")
    print_warning(f"No {config.checks_path} found; using the default gate set.")
    return default_registry()


async def _run_checks(
    orchestrator: PipelineOrchestrator, checks: list[Check], work_dir: Path, concurrency: int
) -> RunReport:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Signal handlers are unavailable off the main thread and on Windows.
            pass
    try:
        return await orchestrator.run(
            checks, work_dir, concurrency=concurrency, cancel_event=cancel_event
        )
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def _print_report(report: RunReport) -> None:
    table = Table(title="Quality gates", show_header=True, header_style="bold cyan")
    table.add_column("Check", no_wrap=True)
    table.add_column("Kind", style="dim")
    table.add_column("Outcome")
    table.add_column("Duration", justify="right")
    for result in report.results:
        color = OUTCOME_STYLES.get(result.outcome.value, "white")
        table.add_row(
            result.check_id,
            result.kind.value,
            f"[{color}]{result.label}[/{color}]",
            format_duration(result.duration_seconds),
        )
    console.print(table)


def cmd_check(args: argparse.Namespace, config: Config) -> int:
    if args.workdir:
        config.work_dir = Path(args.workdir)
    concurrency = args.concurrency or config.run.concurrency

    try:
        registry = _load_registry(config, args.config)
        checks = registry.select(args.only) if args.only else registry.ordered()
    except RegistryError as exc:
        print_error(f"Error: {exc}")
        return EXIT_VALIDATION

    print_section_header(f"Running {len(checks)} check(s) in {config.work_dir}")
    orchestrator = PipelineOrchestrator.from_config(config)
    orchestrator.show_summary = False
    report = asyncio.run(_run_checks(orchestrator, checks, config.work_dir, concurrency))
    _print_report(report)

    if args.report is not None:
        path = save_json(report.to_ci_dict(), args.report or config.report_path)
        console.print(f"[dim]Report saved to {path}[/dim]")

    if report.passed:
        print_success("All blocking checks passed.")
        return EXIT_OK
    print_error("Blocking checks failed.")
    return EXIT_CHECKS_FAILED


# ---------------------------------------------------------------------------
# listings
# ---------------------------------------------------------------------------


def cmd_templates(args: argparse.Namespace, config: Config) -> int:
    store = _template_store(config, args.templates_dir)
    try:
        manifests = store.available()
    except TemplateStoreError as exc:
        print_error(f"Error: {exc}")
        return EXIT_VALIDATION

    table = Table(title="Templates", show_header=True, header_style="bold cyan")
    table.add_column("Name", no_wrap=True)
    table.add_column("Version")
    table.add_column("Variables", style="dim")
    table.add_column("Description")
    for manifest in manifests:
        table.add_row(
            manifest.name,
            manifest.version,
            ", ".join(v.name for v in manifest.variables),
            manifest.description,
        )
    console.print(table)
    return EXIT_OK


def cmd_checks(args: argparse.Namespace, config: Config) -> int:
    if args.workdir:
        config.work_dir = Path(args.workdir)
    try:
        checks = _load_registry(config, args.config).ordered()
    except RegistryError as exc:
        print_error(f"Error: {exc}")
        return EXIT_VALIDATION

    table = Table(title="Checks (run order)", show_header=True, header_style="bold cyan")
    table.add_column("Id", no_wrap=True)
    table.add_column("Kind")
    table.add_column("After", style="dim")
    table.add_column("Command")
    for check in checks:
        table.add_row(
            check.id,
            check.kind.value,
            ", ".join(check.after),
            check.invocation.describe(),
        )
    console.print(table)
    return EXIT_OK


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skelgate",
        description="Instantiate project skeletons and run their quality gates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  skelgate instantiate python-package ./my-lib --var project_name='My Lib'\n"
            "  skelgate check --concurrency 4\n"
            "  skelgate check --only tests --report gates.json\n"
        ),
    )
    sub = parser.add_subparsers(dest="command", required=True)

    inst = sub.add_parser("instantiate", help="Create a project from a template")
    inst.add_argument("template_id", help="Template name, name@version, or template directory")
    inst.add_argument("target_dir", help="Directory the project is written into")
    inst.add_argument(
        "--var", action="append", default=[], metavar="NAME=VALUE",
        help="Set a template variable (repeatable)",
    )
    inst.add_argument(
        "--templates-dir", action="append", default=[], metavar="DIR",
        help="Extra directory to search for templates (repeatable)",
    )
    inst.add_argument("--no-input", action="store_true", help="Never prompt; use defaults")
    inst.add_argument("--overwrite", action="store_true", help="Overwrite existing files")
    inst.set_defaults(handler=cmd_instantiate)

    chk = sub.add_parser("check", help="Run the quality gates")
    chk.add_argument("--concurrency", type=int, default=None, metavar="N",
                     help="Run up to N independent checks at once (default: 1)")
    chk.add_argument("--only", action="append", default=[], metavar="ID",
                     help="Run only this check (repeatable)")
    chk.add_argument("--config", default=None, metavar="PATH",
                     help="Check declarations (default: .skelgate/checks.yaml)")
    chk.add_argument("--workdir", default=None, metavar="DIR",
                     help="Tree to check (default: current directory)")
    chk.add_argument("--report", nargs="?", const="", default=None, metavar="PATH",
                     help="Write a JSON report for CI (default: .skelgate/run-report.json)")
    chk.set_defaults(handler=cmd_check)

    tpl = sub.add_parser("templates", help="List available templates")
    tpl.add_argument("--templates-dir", action="append", default=[], metavar="DIR")
    tpl.set_defaults(handler=cmd_templates)

    lst = sub.add_parser("checks", help="Show the declared checks in run order")
    lst.add_argument("--config", default=None, metavar="PATH")
    lst.add_argument("--workdir", default=None, metavar="DIR")
    lst.set_defaults(handler=cmd_checks)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point for ``skelgate`` / ``python -m skelgate``."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "concurrency", None) is not None and args.concurrency < 1:
        parser.error("--concurrency must be at least 1")

    config = Config.from_env()
    sys.exit(args.handler(args, config))


if __name__ == "__main__":
    main()
