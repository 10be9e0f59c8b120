"""
CLI commands for formula runs.

Thin wrappers over ``formula_runner.core.services.recipe_run``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from formula_runner.core.models.recipe import Recipe
from formula_runner.core.models.settings import EngineSettings


def _settings(ctx: click.Context) -> EngineSettings:
    """Load formula-runner.yml once per invocation."""
    if "settings" not in ctx.obj:
        from formula_runner.core.config.loader import ConfigError, load_settings

        try:
            ctx.obj["settings"] = load_settings(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)
    return ctx.obj["settings"]


def _variables(ctx: click.Context, assignments: tuple[str, ...]) -> dict[str, str]:
    """Config ``variables:`` overlaid with ``--set`` pairs."""
    from formula_runner.core.services.recipe_run import parse_assignments

    variables = {k.upper(): v for k, v in _settings(ctx).variables.items()}
    try:
        variables.update(parse_assignments(assignments))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--set") from e
    return variables


def _load_recipe(path: Path, variables: dict[str, str]) -> Recipe:
    """Render + parse, or print the error and exit 1."""
    from formula_runner.core.errors import ParseError
    from formula_runner.core.services.recipe_run import parse, render_template

    try:
        text = path.read_text(encoding="utf-8")
        return parse(render_template(text, variables))
    except (OSError, ParseError) as e:
        click.secho(f"❌ Cannot load {path}: {e}", fg="red", err=True)
        sys.exit(1)


def _lookup(settings: EngineSettings):
    from formula_runner.core.services.recipe_run import PathLookup

    return PathLookup() if settings.use_path_lookup else None


_set_option = click.option(
    "--set", "-s", "assignments", multiple=True, metavar="KEY=VALUE",
    help="Fill a __KEY__ placeholder (repeatable).",
)
_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.",
)
_formula_arg = click.argument(
    "formula", type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


# ── Inspect ─────────────────────────────────────────────────────


@click.command()
@_formula_arg
@_set_option
@_json_option
@click.pass_context
def check(ctx: click.Context, formula: Path, assignments: tuple[str, ...], as_json: bool) -> None:
    """Parse and validate a formula without running it."""
    recipe = _load_recipe(formula, _variables(ctx, assignments))

    if as_json:
        click.echo(json.dumps(recipe.model_dump(mode="json"), indent=2))
        return

    click.secho(f"✅ {recipe.name} {recipe.version or ''}".rstrip(), fg="green", bold=True)
    if recipe.description:
        click.echo(f"   {recipe.description}")
    click.echo(f"   Source:  {recipe.url}")
    click.echo(f"   sha256:  {recipe.sha256}")
    if recipe.dependencies:
        click.echo("   Depends on:")
        for dep in recipe.dependencies:
            version = f" {dep.version}" if dep.version else ""
            click.echo(f"      {dep.name}{version} ({dep.kind})")
    click.echo(f"   Build steps: {len(recipe.build)}")
    for step in recipe.build:
        click.echo(f"      $ {step.display}")
    click.echo(f"   Installs: {len(recipe.install)}")
    for action in recipe.install:
        click.echo(f"      {action.source} → {action.dest}")
    click.echo(f"   Tests: {len(recipe.test)}")
    for assertion in recipe.test:
        click.echo(f"      {assertion.display}  ~ {assertion.expect!r}")


@click.command()
@_formula_arg
@_set_option
@click.option(
    "--strict", is_flag=True, help="Fail if any placeholder is left unfilled.",
)
@click.pass_context
def render(ctx: click.Context, formula: Path, assignments: tuple[str, ...], strict: bool) -> None:
    """Fill template placeholders and print the formula."""
    from formula_runner.core.services.recipe_run import find_placeholders, render_template

    text = render_template(formula.read_text(encoding="utf-8"), _variables(ctx, assignments))
    missing = find_placeholders(text)

    click.echo(text, nl=False)
    if missing:
        keys = ", ".join(f"__{k}__" for k in missing)
        click.secho(f"⚠️  Unfilled placeholders: {keys}", fg="yellow", err=True)
        if strict:
            sys.exit(1)


@click.command()
@_formula_arg
@_set_option
@_json_option
@click.pass_context
def plan(ctx: click.Context, formula: Path, assignments: tuple[str, ...], as_json: bool) -> None:
    """Resolve a formula's dependencies and show the install order."""
    from formula_runner.core.errors import ResolutionError
    from formula_runner.core.services.recipe_run import resolve

    settings = _settings(ctx)
    recipe = _load_recipe(formula, _variables(ctx, assignments))

    try:
        result = resolve(recipe, settings.installed_locations(), _lookup(settings))
    except ResolutionError as e:
        if as_json:
            click.echo(json.dumps({"error": e.to_dict()}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if not result.entries:
        click.secho(f"✅ {recipe.name} has no dependencies", fg="green")
        return

    click.secho(f"📋 Install order for {recipe.name}:", fg="cyan", bold=True)
    for i, entry in enumerate(result.entries, 1):
        version = entry.location.version or "?"
        via = " (transitive)" if entry.transitive else ""
        click.echo(
            f"   {i}. {entry.name:<20} {version:<10} {entry.dependency.kind:<8} "
            f"{entry.location.path}{via}"
        )


# ── Act ─────────────────────────────────────────────────────────


@click.command()
@_formula_arg
@click.option(
    "--prefix", "-p", type=click.Path(file_okay=False, path_type=Path), default=None,
    help="Install prefix (default: 'prefix' from formula-runner.yml).",
)
@click.option(
    "--source", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None,
    help="Pre-downloaded source archive; checked against the formula's sha256.",
)
@click.option(
    "--workdir", "-w", type=click.Path(file_okay=False, path_type=Path), default=None,
    help="Build tree (default: a temporary directory).",
)
@click.option("--build-timeout", type=float, default=None, help="Per-step build deadline (s).")
@click.option(
    "--rollback-on-verify-failure", "rollback_on_verify", is_flag=True,
    help="Undo the install when any smoke test fails.",
)
@_set_option
@_json_option
@click.pass_context
def install(
    ctx: click.Context,
    formula: Path,
    prefix: Path | None,
    source: Path | None,
    workdir: Path | None,
    build_timeout: float | None,
    rollback_on_verify: bool,
    assignments: tuple[str, ...],
    as_json: bool,
) -> None:
    """Build a formula, install it into a prefix and run its tests."""
    from formula_runner.core.persistence.audit import AuditWriter
    from formula_runner.core.services.recipe_run import LocalSourceFetcher, run_formula_file
    from formula_runner.core.services.recipe_run.execution.source import is_local_url

    settings = _settings(ctx)
    prefix = prefix or settings.prefix
    if prefix is None:
        raise click.UsageError("No install prefix: pass --prefix or set 'prefix' in formula-runner.yml")

    overrides: dict = {}
    if build_timeout is not None:
        overrides["build_timeout"] = build_timeout
    if rollback_on_verify:
        overrides["verify_policy"] = "rollback"
    if overrides:
        settings = settings.model_copy(update=overrides)

    variables = _variables(ctx, assignments)
    fetcher = None
    if source is not None:
        fetcher = LocalSourceFetcher(override=source)
    else:
        url = _load_recipe(formula, variables).url
        if is_local_url(url):
            fetcher = LocalSourceFetcher()
        elif not ctx.obj.get("quiet") and not as_json:
            click.secho(
                f"⚠️  Source {url} not fetched; building in the work directory as-is",
                fg="yellow", err=True,
            )

    audit = AuditWriter(state_dir=settings.state_dir) if settings.state_dir else None
    report = run_formula_file(
        formula,
        variables=variables,
        prefix=prefix,
        installed=settings.installed_locations(),
        lookup=_lookup(settings),
        fetcher=fetcher,
        workdir=workdir,
        settings=settings,
        audit=audit,
    )

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report, verbose=ctx.obj.get("verbose", False))

    if report.status != "ok":
        sys.exit(1)


def _print_report(report, *, verbose: bool) -> None:
    if report.plan is not None and report.plan.entries:
        click.echo(f"📋 Dependencies: {', '.join(report.plan.names)}")
    if report.build is not None:
        click.echo(f"🔧 Built with {len(report.build.steps)} step(s) in {report.build.workdir}")
    if report.staged is not None:
        click.echo(f"📦 Staged {len(report.staged.files)} file(s) into {report.staged.prefix}")
        for rel in report.staged.paths:
            click.echo(f"      {rel}")

    if report.verification is not None:
        click.echo(
            f"🧪 Tests: {report.verification.passed}/{report.verification.total} passed"
        )
        for result in report.verification.results:
            if result.passed:
                click.secho(f"   ✅ {result.invocation}", fg="green")
            else:
                click.secho(f"   ❌ {result.invocation}: {result.error}", fg="red")
                if verbose and result.output:
                    click.echo(result.output.rstrip()[:1000])

    if report.status == "ok":
        click.secho(f"✅ {report.recipe} installed", fg="green", bold=True)
        return
    if report.status == "partial":
        click.secho(f"⚠️  {report.recipe} installed, but tests failed", fg="yellow", bold=True)
        return

    click.secho(f"❌ {report.recipe} failed during {report.phase}: {report.cause}", fg="red", bold=True)
    if report.rolled_back:
        click.echo("   ↩️  Staged files rolled back")
    failure = report.cause.to_dict() if report.cause else {}
    if verbose and failure.get("output"):
        click.echo(str(failure["output"]).rstrip()[:2000])


# ── History ─────────────────────────────────────────────────────


@click.command()
@click.option("-n", "count", type=int, default=20, help="Number of runs to show.")
@click.option("--recipe", "-r", default=None, help="Only runs of this recipe.")
@_json_option
@click.pass_context
def history(ctx: click.Context, count: int, recipe: str | None, as_json: bool) -> None:
    """Show recent runs from the audit ledger."""
    from formula_runner.core.persistence.audit import AuditWriter

    settings = _settings(ctx)
    if settings.state_dir is None:
        click.secho("⚠️  No state_dir configured; runs are not recorded", fg="yellow")
        return

    entries = AuditWriter(state_dir=settings.state_dir).read_recent(count, recipe=recipe)
    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No runs recorded yet.")
        return

    icons = {"ok": "✅", "partial": "⚠️ ", "failed": "❌"}
    for entry in entries:
        where = f" ({entry.phase})" if entry.phase else ""
        click.echo(
            f"{icons.get(entry.status, '?')} {entry.timestamp[:19]}  {entry.recipe:<20} "
            f"{entry.state}{where}  → {entry.prefix}"
        )
