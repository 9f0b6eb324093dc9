"""ModelRelay command line."""

import click

from .broker import broker as broker_cmd
from .worker import worker as worker_cmd


@click.group()
@click.version_option(package_name='modelrelay')
def cli():
    """ModelRelay: relay code-generation requests to remote model workers"""


cli.add_command(broker_cmd, name='broker')
cli.add_command(worker_cmd, name='worker')


if __name__ == '__main__':
    cli()
