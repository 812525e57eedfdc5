"""CLI interface for cruntime"""

import logging
import sys
import warnings

import click

from cruntime.core.config import Config
from cruntime.core.orchestrator import Orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

config_option = click.option(
    "-c",
    "--config",
    required=True,
    type=click.Path(exists=True),
    help="Path to configuration YAML file",
)
env_file_option = click.option(
    "-e",
    "--env-file",
    multiple=True,
    type=click.Path(exists=True),
    help="Load environment variables from file (can be used multiple times)",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode with verbose output and warnings",
)
@click.version_option(package_name="cruntime")
@click.pass_context
def cli(ctx, debug):
    """cruntime - container runtime preparation for Kubernetes nodes

    Enable, disable and preload the container runtime on local or remote hosts.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        warnings.filterwarnings("ignore", category=DeprecationWarning)


def _load(config: str, env_file: tuple) -> Config:
    env_files = list(env_file) if env_file else None
    return Config(config, env_files=env_files)


def _run_action(ctx, action: str, config: str, env_file: tuple, **kwargs) -> None:
    """Run an orchestrator action and exit with its status"""
    if ctx.obj.get("debug"):
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        cfg = _load(config, env_file)
        orchestrator = Orchestrator(cfg, **kwargs)

        if kwargs.get("skip_host_verification"):
            click.echo("⚠️  WARNING: SSH host key verification is disabled!")

        if orchestrator.run(action):
            click.echo(f"\n✓ {action} completed successfully")
            sys.exit(0)
        click.echo(f"\n✗ {action} failed")
        sys.exit(1)
    except Exception as e:
        click.echo(f"\n✗ Error: {e}")
        sys.exit(1)


def _target_options(f):
    f = click.option(
        "--max-concurrent-targets",
        type=click.IntRange(1, 10, clamp=True),
        default=3,
        show_default=True,
        help="Maximum number of targets handled at once (1-10)",
    )(f)
    f = click.option(
        "--skip-host-verification",
        is_flag=True,
        help="Skip SSH host key verification (insecure, only for testing)",
    )(f)
    return env_file_option(config_option(f))


@cli.command()
@_target_options
@click.option("--disable-others", is_flag=True, help="Disable competing container runtimes")
@click.option("--force-systemd", is_flag=True, help="Force the systemd cgroup driver")
@click.pass_context
def enable(ctx, config: str, env_file: tuple, skip_host_verification: bool, max_concurrent_targets: int,
           disable_others: bool, force_systemd: bool):
    """Enable the container runtime (and its CRI shim) on every target

    Examples:
        cruntime enable -c config.yaml
        cruntime enable -c config.yaml --disable-others --force-systemd
    """
    _run_action(ctx, "enable", config, env_file,
                skip_host_verification=skip_host_verification,
                max_concurrent_targets=max_concurrent_targets,
                disable_others=disable_others,
                force_systemd=force_systemd)


@cli.command()
@_target_options
@click.pass_context
def disable(ctx, config: str, env_file: tuple, skip_host_verification: bool, max_concurrent_targets: int):
    """Stop, disable and mask the container runtime on every target"""
    _run_action(ctx, "disable", config, env_file,
                skip_host_verification=skip_host_verification,
                max_concurrent_targets=max_concurrent_targets)


@cli.command()
@_target_options
@click.pass_context
def preload(ctx, config: str, env_file: tuple, skip_host_verification: bool, max_concurrent_targets: int):
    """Extract the cached preload tarball into the runtime on every target

    Examples:
        cruntime preload -c config.yaml
    """
    _run_action(ctx, "preload", config, env_file,
                skip_host_verification=skip_host_verification,
                max_concurrent_targets=max_concurrent_targets)


@cli.command()
@_target_options
@click.pass_context
def images(ctx, config: str, env_file: tuple, skip_host_verification: bool, max_concurrent_targets: int):
    """List the images known to the runtime on every target"""
    _run_action(ctx, "images", config, env_file,
                skip_host_verification=skip_host_verification,
                max_concurrent_targets=max_concurrent_targets)


@cli.command()
@_target_options
@click.pass_context
def status(ctx, config: str, env_file: tuple, skip_host_verification: bool, max_concurrent_targets: int):
    """Check availability, version and state of the runtime on every target"""
    _run_action(ctx, "status", config, env_file,
                skip_host_verification=skip_host_verification,
                max_concurrent_targets=max_concurrent_targets)


@cli.command()
@config_option
@env_file_option
def validate(config: str, env_file: tuple):
    """Validate configuration file

    Examples:
        cruntime validate -c config.yaml
        cruntime validate -c config.yaml -e .env.prod
    """
    try:
        cfg = _load(config, env_file)

        if not cfg.validate():
            click.echo("✗ Configuration validation failed")
            sys.exit(1)

        cluster = cfg.cluster
        click.echo("✓ Configuration is valid")
        click.echo(f"  Runtime: {cfg.runtime_config.get('type', 'docker')}")
        click.echo(f"  Kubernetes: {cluster.kubernetes_version}")
        click.echo(f"  Network plugin: {cluster.network_plugin or '(default)'}")
        click.echo(f"  Targets: {len(cfg.targets)}")
        sys.exit(0)

    except Exception as e:
        click.echo(f"✗ Error: {e}")
        sys.exit(1)


@cli.command()
@click.option(
    "--cache-dir",
    type=click.Path(),
    default=None,
    help="Preload cache directory (default: ~/.cruntime/cache/preloaded-tarball)",
)
def cache(cache_dir):
    """Show the preload tarballs available locally"""
    from cruntime.preload import PreloadCache

    stats = PreloadCache(cache_dir).get_stats()
    click.echo("Preload cache:")
    click.echo(f"  Directory: {stats['cache_dir']}")
    click.echo(f"  Entries: {stats['num_entries']}")
    click.echo(f"  Total size: {stats['total_size_mb']} MB")
    for name in stats["entries"]:
        click.echo(f"    - {name}")


def main():
    """Entry point for CLI"""
    cli()


if __name__ == "__main__":
    main()
