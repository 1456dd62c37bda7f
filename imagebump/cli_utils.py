"""
Common CLI utilities and decorators for consistent command behavior.
"""

import sys
import click
from functools import wraps

from .exit_codes import (
    SUCCESS, INTERRUPTED,
    UpdaterError, get_exit_code_for_exception,
)
from .output import emit_error


def standard_command(func):
    """
    Decorator that provides standard CLI behavior:
    - Consistent error handling: one parseable line plus detail on stderr
    - Exit code chosen by failure class (see imagebump.exit_codes)
    - Click usage errors keep Click's own handling
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        json_output = kwargs.get('json_output', False)
        try:
            func(*args, **kwargs)
            sys.exit(SUCCESS)
        except KeyboardInterrupt:
            click.echo("error=interrupted code=130", err=True)
            sys.exit(INTERRUPTED)
        except click.ClickException:
            # Click exceptions already have their exit code
            raise
        except UpdaterError as e:
            emit_error(e, json_output=json_output)
            sys.exit(e.exit_code)
        except Exception as e:
            wrapped = UpdaterError(f"Unexpected failure: {e}", cause=e)
            wrapped.exit_code = get_exit_code_for_exception(e)
            emit_error(wrapped, json_output=json_output)
            sys.exit(wrapped.exit_code)

    return wrapper


# Standard options that many commands share
common_options = {
    'verbose': click.option('-v', '--verbose', is_flag=True,
                           help='Log debug output to stderr'),
    'quiet': click.option('-q', '--quiet', is_flag=True,
                         help='Suppress data output'),
    'json': click.option('--json', 'json_output', is_flag=True,
                        help='Output as JSONL'),
    'config': click.option('--config', 'config_path', type=click.Path(dir_okay=False),
                          help='Config file (default: IMAGEBUMP_CONFIG or ~/.imagebump/config.*)'),
    'manifest': click.option('-m', '--manifest', 'manifests', multiple=True,
                            type=click.Path(dir_okay=False),
                            help='Manifest file to update (repeatable; default: manifests.paths)'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('verbose', 'json')
        def my_command(verbose, json_output):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator
