"""
Operations on a single node.
"""
from __future__ import annotations

from click import ClickException
from rich.table import Table
from typer import Argument, Context, Option

from ...core import (
    ROOT,
    CreateMode,
    NodeNotFoundError,
    VersionConflictError,
)
from ._utils import (
    MainTyper,
    check_path,
    console,
    format_session_id,
    get_root_context,
    logger,
)

app = MainTyper(
    "node",
    help="Operations on a single node",
)


@app.command()
def get(
    ctx: Context,
    path: str = Argument(help="Path of node"),
):
    """
    Print node's data
    """
    check_path(ctx, path)
    root_context = get_root_context(ctx)

    with root_context.open_sync() as sync:
        try:
            data = sync.get_data(path)
        except NodeNotFoundError:
            raise ClickException(f"node '{path}' does not exist")

    console.print(data.decode(errors="replace"), markup=False, highlight=False)


@app.command()
def stat(
    ctx: Context,
    path: str = Argument(help="Path of node"),
):
    """
    Print node's metadata
    """
    check_path(ctx, path)
    root_context = get_root_context(ctx)

    with root_context.open_sync() as sync:
        try:
            node_stat = sync.get_stat(path)
        except NodeNotFoundError:
            raise ClickException(f"node '{path}' does not exist")

    table = Table(title=path, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    for field, value in node_stat.model_dump().items():
        if field == "ephemeral_owner" and value:
            value = format_session_id(value)
        table.add_row(field, str(value))

    console.print(table)


@app.command()
def create(
    ctx: Context,
    path: str = Argument(help="Path of node; missing ancestors are created"),
    data: str = Option(
        "",
        help="Initial data of node",
    ),
    ephemeral: bool = Option(
        False,
        "--ephemeral",
        help="Create node as ephemeral; only useful with an in-process namespace or for testing, as it's deleted upon exit",
    ),
    sequential: bool = Option(
        False,
        "--sequential",
        help="Append a unique sequence number to the node's name",
    ),
):
    """
    Create node along with any missing ancestors
    """
    check_path(ctx, path)

    if path == ROOT:
        raise ClickException("root already exists")

    mode = _get_mode(ephemeral=ephemeral, sequential=sequential)
    root_context = get_root_context(ctx)

    # created path, including any sequence suffix, is logged by ZooSync.create
    with root_context.open_sync(load=False) as sync:
        created = sync.create(path, mode, data.encode())

    if not created:
        logger.info(f"Already exists: '{path}'")


@app.command("set")
def set_(
    ctx: Context,
    path: str = Argument(help="Path of node"),
    data: str = Argument(help="New data of node"),
    version: int = Option(
        -1,
        help="Expected current version of node; -1 to match any version",
        min=-1,
    ),
):
    """
    Set node's data, conditional on its current version
    """
    check_path(ctx, path)
    root_context = get_root_context(ctx)

    with root_context.open_sync(load=False) as sync:
        try:
            node_stat = sync.set_data(path, version, data.encode())
        except NodeNotFoundError:
            raise ClickException(f"node '{path}' does not exist")
        except VersionConflictError as e:
            raise ClickException(str(e))

    logger.info(f"Set data: '{path}', now at version {node_stat.version}")


@app.command()
def delete(
    ctx: Context,
    path: str = Argument(help="Path of node"),
):
    """
    Delete node along with its descendants
    """
    check_path(ctx, path)

    if path == ROOT:
        raise ClickException("root may not be deleted")

    root_context = get_root_context(ctx)

    with root_context.open_sync(load=False) as sync:
        sync.delete(path)

    logger.info(f"Deleted: '{path}'")


def _get_mode(*, ephemeral: bool, sequential: bool) -> CreateMode:
    if ephemeral:
        return (
            CreateMode.EPHEMERAL_SEQUENTIAL if sequential else CreateMode.EPHEMERAL
        )
    return CreateMode.PERSISTENT_SEQUENTIAL if sequential else CreateMode.PERSISTENT
