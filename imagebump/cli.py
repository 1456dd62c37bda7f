#!/usr/bin/env python3

import click

from imagebump.commands.update import update_handler
from imagebump.commands.show import show_handler
from imagebump.commands.config import config_cmd


@click.group()
@click.version_option(package_name="imagebump")
def cli():
    """imagebump - Point deployment manifests at a new image tag.

    Rewrites image references in YAML manifests, commits the change and
    pushes it to the branch a GitOps controller watches.
    """
    pass


cli.add_command(update_handler, name='update')
cli.add_command(show_handler, name='show')
cli.add_command(config_cmd)


def main():
    cli()


if __name__ == "__main__":
    main()
