"""
CLI interface for pyexec.

    pyexec run [OPTIONS] SCRIPT [ARGS]...
    pyexec init [--force]
    pyexec profile list|show|set|remove

Everything after SCRIPT is passed to the executed code as its arguments.
"""

import click
import yaml

from pyexec import __version__
from pyexec.cancellation import CancellationToken
from pyexec.utils import print_error, print_success


def _require_config(ctx):
    if "config" not in ctx.obj:
        print_error(f"Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}")
        raise SystemExit(1)
    return ctx.obj["config"]


@click.group()
@click.version_option(version=__version__, prog_name="pyexec")
@click.pass_context
def main(ctx):
    """
    pyexec - Run Python snippets, files and URLs with declared references.
    """
    from pyexec.config import load_config
    from pyexec.errors import ConfigError

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except ConfigError as e:
        # Commands that need config report this themselves
        ctx.obj["config_error"] = str(e)


@main.command(
    "run",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("script")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("-r", "--reference", "references", multiple=True, help="Reference specifier (nuget:, framework:, folder:, project:, or a path)")
@click.option("-u", "--using", "usings", multiple=True, help="Using directive: ns, 'static ns', 'alias = ns', '-ns' to remove")
@click.option("-f", "--framework", "target_framework", help="Target framework, e.g. py3.12")
@click.option("--compiler", "compiler_type", help="Compiler: workspace (default), simple, script")
@click.option("--executor", "executor_type", help="Executor: default, noop")
@click.option("-e", "--entry", "entry_point", help="Entry method for library scripts")
@click.option("--startup-type", help="Only look for the entry method on this class")
@click.option("--project", "project_path", help="Project manifest whose dependencies are referenced")
@click.option("--additional-script", "additional_scripts", multiple=True, help="Extra source file importable by its stem")
@click.option("--web", is_flag=True, help="Add the web framework references and usings")
@click.option("--no-wide", is_flag=True, help="Do not add the baseline helper packages")
@click.option("--ref-fallback", is_flag=True, help="Fetch reference packages when no local stub pack exists")
@click.option("--dry-run", is_flag=True, help="Compile only, do not execute")
@click.option("--no-cache", is_flag=True, help="Bypass the resolution cache")
@click.option("--profile", "config_profile", help="Config profile to merge into the options")
@click.option("--timeout", type=float, help="Cancel after this many seconds")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def run(ctx, script: str, args: tuple, **kwargs):
    """Compile and run SCRIPT (file, URL, or code:<text>)."""
    from pyexec.runner import ScriptRunner
    from pyexec.schemas.options import ExecOptions, default_target_framework, parse_target_framework
    from pyexec.utils import setup_logging

    config = _require_config(ctx)
    debug = kwargs["debug"]
    setup_logging(
        log_level="DEBUG" if debug else config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
    )

    options = ExecOptions(
        script=script,
        target_framework=kwargs["target_framework"] or config.default_target_framework or default_target_framework(),
        references=list(kwargs["references"]),
        usings=list(kwargs["usings"]),
        entry_point=kwargs["entry_point"] or config.default_entry_point,
        startup_type=kwargs["startup_type"],
        arguments=list(args),
        project_path=kwargs["project_path"],
        additional_scripts=list(kwargs["additional_scripts"]),
        include_wide_references=not kwargs["no_wide"],
        include_web_references=kwargs["web"],
        use_ref_assemblies_for_compile=kwargs["ref_fallback"],
        dry_run=kwargs["dry_run"],
        disable_cache=kwargs["no_cache"],
        debug=debug,
        config_profile=kwargs["config_profile"],
        cancellation_token=CancellationToken(timeout=kwargs["timeout"]),
    )
    if kwargs["compiler_type"]:
        options.compiler_type = kwargs["compiler_type"]
    if kwargs["executor_type"]:
        options.executor_type = kwargs["executor_type"]

    try:
        parse_target_framework(options.target_framework)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--framework")

    runner = ScriptRunner.create_default(config)
    raise SystemExit(int(runner.execute(options)))


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize pyexec configuration."""
    from pyexec.config import PyexecConfig, get_pyexec_home

    home = get_pyexec_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        print_error(f"Config already exists at {cfg_path}. Use --force to overwrite.")
        raise SystemExit(1)

    default_cfg = PyexecConfig(
        packs_dir=str(home / "packs"),
        package_cache_dir=str(home / "packages"),
        env_file=str(home / ".env"),
    ).to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# PYEXEC_INDEX_URL=...\n# PYEXEC_PACKS_DIR=...\n")

    (home / "profiles").mkdir(exist_ok=True)
    print_success(f"Initialized pyexec config at {cfg_path}")


@main.group("profile")
def profile_group():
    """Manage config profiles."""
    pass


def _profile_manager():
    from pyexec.config import get_pyexec_home
    from pyexec.profiles import ConfigProfileManager

    return ConfigProfileManager(get_pyexec_home() / "profiles")


@profile_group.command("list")
def list_profiles():
    """List saved profiles."""
    names = _profile_manager().list_profiles()
    if not names:
        click.echo("No profiles found.")
        return
    for name in names:
        click.echo(name)


@profile_group.command("show")
@click.argument("name")
def show_profile(name: str):
    """Show a profile as YAML."""
    from pyexec.errors import ConfigError

    try:
        profile = _profile_manager().get_profile(name)
    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)
    if profile is None:
        print_error(f"Profile not found: {name}")
        raise SystemExit(1)
    click.echo(yaml.safe_dump(profile.to_dict(), default_flow_style=False, sort_keys=False).rstrip())


@profile_group.command("set")
@click.argument("name")
@click.option("-r", "--reference", "references", multiple=True, help="Reference specifier")
@click.option("-u", "--using", "usings", multiple=True, help="Using directive")
@click.option("-f", "--framework", "target_framework", help="Target framework")
@click.option("--compiler", "compiler_type", help="Compiler type")
@click.option("--executor", "executor_type", help="Executor type")
@click.option("-e", "--entry", "entry_point", help="Entry method name")
@click.option("--web/--no-web", "include_web_references", default=None, help="Include web references")
@click.option("--wide/--no-wide", "include_wide_references", default=None, help="Include wide references")
def set_profile(name: str, **kwargs):
    """Create or replace a profile."""
    from pyexec.errors import ConfigError
    from pyexec.profiles import ConfigProfile

    profile = ConfigProfile(
        name=name,
        references=list(kwargs.pop("references")),
        usings=list(kwargs.pop("usings")),
        **kwargs,
    )
    try:
        path = _profile_manager().save_profile(profile)
    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)
    print_success(f"Saved profile {name} to {path}")


@profile_group.command("remove")
@click.argument("name")
def remove_profile(name: str):
    """Delete a profile."""
    from pyexec.errors import ConfigError

    try:
        removed = _profile_manager().delete_profile(name)
    except ConfigError as e:
        print_error(str(e))
        raise SystemExit(1)
    if not removed:
        print_error(f"Profile not found: {name}")
        raise SystemExit(1)
    print_success(f"Removed profile {name}")


if __name__ == "__main__":
    main()
