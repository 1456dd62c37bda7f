"""
Handles the 'show' command: list image references found in manifests.

Read-only; useful to check what `update` would match before running it.
"""

from pathlib import Path

import click

from ..cli_utils import add_common_options, standard_command
from ..config import configure_logging, load_config
from ..exit_codes import InvalidRequestError
from ..infra.manifest_store import ManifestStore
from ..output import emit


@click.command(name='show')
@add_common_options('manifest')
@click.option('-r', '--repository', default=None, help='Only references to this exact repository')
@add_common_options('config', 'json', 'verbose')
@standard_command
def show_handler(manifests, repository, config_path, json_output, verbose):
    """List the image references in the manifests.

    Examples:

    \b
        imagebump show -m deploy/app.yaml
        imagebump show -m deploy/app.yaml -r ghcr.io/acme/app --json
    """
    config = load_config(config_path)
    configure_logging(config, verbose=verbose)

    paths = manifests or config['manifests']['paths']
    if not paths:
        raise InvalidRequestError("No manifests given (use --manifest or set manifests.paths)")

    store = ManifestStore(config['manifests']['image_keys'])
    rows = []
    for path in paths:
        doc = store.load(Path(path))
        for field in doc.references(repository):
            row = {'path': str(doc.path)}
            row.update(field.to_dict())
            rows.append(row)

    emit(
        rows,
        pretty=not json_output,
        columns=['path', 'document', 'location', 'repository', 'tag', 'digest'],
        title="Image references",
    )
