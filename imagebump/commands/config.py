"""
Handles the 'config' command group: inspect and bootstrap settings.
"""

import json

import click

from ..cli_utils import standard_command
from ..config import get_config_path, get_default_config, load_config

# Settings never echoed back in full
SECRET_KEYS = (('registry', 'token'),)


def _masked(config):
    for section, key in SECRET_KEYS:
        if config.get(section, {}).get(key):
            config[section][key] = "***"
    return config


@click.group("config")
def config_cmd():
    """Inspect or create the imagebump configuration."""
    pass


@config_cmd.command("generate")
@click.option("--force", is_flag=True, help="Replace an existing config file")
@standard_command
def generate_config(force):
    """Write the default settings to the config file location."""
    target = get_config_path()
    defaults = json.dumps(get_default_config(), indent=2)
    if target.exists() and not force:
        click.echo(f"{target} already exists (use --force to replace it). Defaults:\n{defaults}")
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(defaults + "\n")
    click.echo(f"Wrote default configuration to {target}")


@config_cmd.command("show")
@click.option("--pretty", is_flag=True, help="Indented JSON instead of a single line")
@click.option("--path", "path_only", is_flag=True, help="Only print which config file is in use")
@standard_command
def show_config(pretty, path_only):
    """Print the effective configuration (defaults, file, environment).

    The registry token is masked.
    """
    if path_only:
        click.echo(json.dumps({"config_path": str(get_config_path())}))
        return

    config = _masked(load_config())
    click.echo(json.dumps(config, indent=2 if pretty else None, ensure_ascii=False))
