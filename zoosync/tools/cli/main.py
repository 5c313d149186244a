"""
Entry point of `zoosync` CLI.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import dotenv
from click.exceptions import BadParameter, MissingParameter
from pydantic import ValidationError
from typer import Context, Exit, Option

from ...core import BaseClient, ZooSync
from ..config import Config, InstanceConfig
from . import node, tree
from ._utils import (
    MainTyper,
    format_session_id,
    get_root_context,
    logger,
    lookup_param,
)

dotenv.load_dotenv()

LOAD_TIMEOUT = 30.0
"""
Seconds to wait for the initial load of the mirror.
"""

app = MainTyper(
    "zoosync",
    help="ZooSync CLI Toolkit",
)


@app.callback()
def main(
    ctx: Context,
    hosts: str
    | None = Option(
        None,
        help="ZooKeeper hosts, e.g. localhost:2181, or 'memory' for an in-process namespace",
        envvar="ZOOSYNC_HOSTS",
    ),
    instance_name: str
    | None = Option(
        None,
        "--instance",
        help="Instance name as configured in .yaml",
        envvar="ZOOSYNC_INSTANCE",
    ),
    config_file: Path = Option(
        "zoosync.yaml",
        help=".yaml file containing instance info, only applicable with --instance",
        envvar="ZOOSYNC_CONFIG_FILE",
        dir_okay=False,
    ),
    timeout: float
    | None = Option(
        None,
        help="Session timeout in seconds",
        min=0.1,
    ),
):
    if instance_name:
        if hosts:
            raise BadParameter(
                message="cannot be passed with --instance",
                ctx=ctx,
                param=lookup_param(ctx, "hosts"),
            )

        root_context = RootContext.from_config(
            ctx=ctx, instance_name=instance_name, config_file=config_file
        )
    else:
        if not hosts:
            raise MissingParameter(
                message="either --hosts or --instance must be provided",
                ctx=ctx,
                param_hint=["hosts", "instance"],
                param_type="option",
            )

        root_context = RootContext(
            ctx=ctx,
            instance=InstanceConfig(hosts=hosts),
            from_file=False,
        )

    if timeout is not None:
        root_context.instance.timeout = timeout

    ctx.obj = root_context


app.add_typer(tree.app)
app.add_typer(node.app)


@app.command()
def check(ctx: Context):
    """
    Check ZooKeeper connection
    """
    root_context = get_root_context(ctx)

    with root_context.connect() as client:
        logger.info(
            f"Connected to '{root_context.instance.hosts}', session {format_session_id(client.session_id)}"
        )


def run():
    app()


@dataclass(kw_only=True)
class RootContext:
    ctx: Context
    instance: InstanceConfig
    from_file: bool

    @classmethod
    def from_config(
        cls,
        *,
        ctx: Context,
        instance_name: str,
        config_file: Path,
    ) -> RootContext:
        # ensure config file exists
        if not config_file.is_file():
            raise BadParameter(
                message=f"file does not exist: {config_file}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        # get config from file
        try:
            config = Config.load_yaml(config_file)
        except (ValueError, ValidationError) as e:
            raise BadParameter(
                f"failed to load config file '{config_file}': {e}",
                ctx=ctx,
                param=lookup_param(ctx, "config_file"),
            )

        # get instance from config
        instance = config.instances.get(instance_name)
        if not instance:
            raise BadParameter(
                f"instance '{instance_name}' not found in '{config_file}'",
                ctx=ctx,
                param=lookup_param(ctx, "instance_name"),
            )

        return RootContext(ctx=ctx, instance=instance, from_file=True)

    def create_client(self) -> BaseClient:
        try:
            return self.instance.create_client(logger=logger)
        except Exception:
            # would have already logged error
            raise Exit(code=1)

    @contextmanager
    def connect(self) -> Iterator[BaseClient]:
        """
        Connect for the duration of a command.
        """
        client = self.create_client()
        try:
            yield client
        finally:
            client.close()

    @contextmanager
    def open_sync(self, *, load: bool = True) -> Iterator[ZooSync]:
        """
        Mirror the namespace for the duration of a command, optionally
        waiting for the initial load.
        """
        with self.connect() as client:
            with self.instance.create_sync(client, logger=logger) as sync:
                if load:
                    sync.watch()
                    if not sync.wait_loaded(LOAD_TIMEOUT):
                        logger.error(
                            f"Timed out loading namespace after {LOAD_TIMEOUT} seconds"
                        )
                        raise Exit(code=1)

                yield sync


if __name__ == "__main__":
    app()
