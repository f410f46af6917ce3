"""Command-line interface for Stream Watchdog."""

import json
import sys
from pathlib import Path

import click

from .config import CONFIG_TEMPLATE, DEFAULT_CONFIG_PATH, ConfigError, WatchdogConfig, write_template
from .recovery import RecoveryExecutor
from .telemetry import Telemetry
from .watchdog import StreamWatchdog, setup_logging

STARTUP_FLUSH_TIMEOUT = 5.0

config_option = click.option(
    "-c", "--config", "config_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to configuration file (YAML)",
)


def _load(config_path: str) -> WatchdogConfig:
    """Load the config, bootstrapping a template when the file is missing."""
    if not Path(config_path).exists():
        try:
            write_template(config_path)
        except OSError as e:
            click.echo(f"Configuration file not found and sample could not be written to {config_path}: {e}", err=True)
            sys.exit(1)
        click.echo(f"Configuration file not found. Created sample at: {config_path}", err=True)
        sys.exit(1)

    try:
        return WatchdogConfig.from_yaml(config_path)
    except ConfigError as e:
        click.echo(f"Failed to load configuration: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(package_name="stream-watchdog")
def main():
    """Stream Watchdog - Keep a streaming API subscription alive and run recovery when it dies."""
    pass


@main.command()
@config_option
@click.option(
    "--dry-run",
    is_flag=True,
    help="Dry-run mode (recovery command is not executed)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose logging",
)
def run(config_path: str, dry_run: bool, verbose: bool):
    """Start the watchdog loop."""
    config = _load(config_path)

    if verbose:
        config.log_level = "DEBUG"
    setup_logging(config.log_level, config.log_file)

    telemetry = Telemetry.from_dsn(config.sentry.dsn)

    try:
        settings = config.to_settings()
    except ConfigError as e:
        telemetry.fatal(f"Configuration Error: {e}")
        telemetry.flush(STARTUP_FLUSH_TIMEOUT)
        telemetry.close()
        sys.exit(1)

    executor = RecoveryExecutor(telemetry, dry_run=dry_run)
    watchdog = StreamWatchdog(settings, telemetry, executor=executor)

    try:
        watchdog.run()
    except KeyboardInterrupt:
        click.echo("Interrupted", err=True)
        sys.exit(130)


@main.command()
@config_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def validate(config_path: str, as_json: bool):
    """Validate configuration file."""
    config = _load(config_path)
    errors = config.validate()

    if as_json:
        click.echo(json.dumps({
            "config": config.to_dict(),
            "errors": errors,
            "warnings": config.warnings(),
        }, indent=2))
        sys.exit(1 if errors else 0)

    if errors:
        click.echo("❌ Configuration has errors:", err=True)
        for error in errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    settings = config.to_settings()
    click.echo("✅ Configuration is valid")
    click.echo(f"\nTarget:   {settings.target_url}")
    click.echo(f"Timeout:  {settings.idle_timeout:g}s")
    click.echo(f"Cooldown: {settings.cooldown:g}s")
    click.echo(f"Command:  {settings.command or '(none)'}")
    click.echo(f"Sentry:   {'enabled' if settings.sentry_dsn else 'disabled'}")

    for warning in config.warnings():
        click.echo(f"⚠️  {warning}")


@main.command()
@config_option
def recover(config_path: str):
    """Run the recovery command once, without telemetry."""
    config = _load(config_path)

    result = RecoveryExecutor(Telemetry()).run(config.command)
    if result.output:
        click.echo(result.text, nl=False)

    if result.succeeded:
        click.echo("✅ Recovery command succeeded")
    else:
        click.echo(f"❌ Recovery command failed: {result.cause}", err=True)
        sys.exit(1)


@main.command()
@click.option("-o", "--output", type=click.Path(dir_okay=False), help="Output file path")
def init(output: str):
    """Generate a sample configuration file."""
    if not output:
        click.echo(CONFIG_TEMPLATE, nl=False)
        return

    try:
        written = write_template(output)
    except OSError as e:
        click.echo(f"Cannot write sample config to {output}: {e}", err=True)
        sys.exit(1)
    if not written:
        click.echo(f"Refusing to overwrite existing file: {output}", err=True)
        sys.exit(1)
    click.echo(f"✅ Sample config written to: {output}")


if __name__ == "__main__":
    main()
