"""ghcache CLI"""

import click

from ghcache import __version__
from ghcache.cli.cache import evict, get, list_repos, prune, remove

from .debug import add_debug_option


@click.group()
@click.version_option(__version__, prog_name="ghcache")
@click.option(
    "--project",
    "-p",
    type=click.Path(file_okay=False),
    default=None,
    envvar="GHCACHE_PROJECT",
    help="Project directory whose .ghcache/metadata.yaml overrides the global records.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="GHCACHE_CONFIG",
    help="Alternate ghcache.cfg configuration file.",
)
@click.pass_context
def cli(ctx, project, config_path):
    """
    Bounded local cache of GitHub repositories.
    """
    ctx.ensure_object(dict)
    ctx.obj.setdefault("PROJECT", project)
    ctx.obj.setdefault("CONFIG_PATH", config_path)


cli.add_command(add_debug_option(get))
cli.add_command(add_debug_option(list_repos))
cli.add_command(add_debug_option(remove))
cli.add_command(add_debug_option(prune))
cli.add_command(add_debug_option(evict))

add_debug_option(cli)

if __name__ == "__main__":
    cli(obj={})
