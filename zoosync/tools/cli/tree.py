"""
Operations on a subtree of the namespace.
"""
from __future__ import annotations

import time

from click import ClickException
from rich.markup import escape
from rich.tree import Tree
from typer import Argument, Context, Option

from ...core import (
    ROOT,
    Event,
    NodeNotFoundError,
    ZooSync,
    get_name,
    join_path,
)
from ._utils import MainTyper, check_path, console, get_root_context, logger

MAX_DATA_PREVIEW = 40
"""
Maximum number of characters of node data to show in tree.
"""

app = MainTyper(
    "tree",
    help="Operations on tree or subtree",
)


@app.command()
def show(
    ctx: Context,
    path: str = Argument(ROOT, help="Path of subtree root"),
    data: bool = Option(
        False,
        "--data",
        help="Whether to show a preview of each node's data",
    ),
):
    """
    Print subtree as currently mirrored
    """
    check_path(ctx, path)
    root_context = get_root_context(ctx)

    with root_context.open_sync() as sync:
        try:
            tree = _build_tree(sync, path, show_data=data)
        except NodeNotFoundError:
            raise ClickException(f"node '{path}' does not exist")

        console.print(tree)


@app.command()
def watch(
    ctx: Context,
    duration: float
    | None = Option(
        None,
        help="Seconds to watch before exiting; watch until interrupted if not passed",
        min=0,
    ),
):
    """
    Print events as the namespace changes, starting with initial load
    """
    root_context = get_root_context(ctx)

    def print_event(event: Event):
        console.print(str(event))

    def on_expired():
        logger.error("Session expired")

    with root_context.open_sync(load=False) as sync:
        sync.add_listener(print_event)
        sync.add_expiry_listener(on_expired)
        sync.watch()

        deadline = None if duration is None else time.monotonic() + duration

        try:
            while deadline is None or time.monotonic() < deadline:
                if sync.expired:
                    raise ClickException("session expired while watching")
                time.sleep(0.1)
        except KeyboardInterrupt:
            pass


@app.command()
def trim(
    ctx: Context,
    path: str = Argument(help="Path of node whose descendants to delete"),
):
    """
    Delete all descendants of node, keeping node itself
    """
    check_path(ctx, path)
    root_context = get_root_context(ctx)

    with root_context.open_sync(load=False) as sync:
        try:
            sync.trim(path)
        except NodeNotFoundError:
            raise ClickException(f"node '{path}' does not exist")

    logger.info(f"Trimmed: '{path}'")


@app.command()
def prune(
    ctx: Context,
    path: str = Argument(help="Path of node to delete"),
):
    """
    Delete node along with its descendants, then each ancestor left empty
    """
    path = check_path(ctx, path)

    if path == ROOT:
        raise ClickException("root may not be pruned")

    root_context = get_root_context(ctx)

    with root_context.open_sync(load=False) as sync:
        remaining = sync.prune(path)

    logger.info(f"Pruned: '{path}', first remaining ancestor: '{remaining}'")


def _build_tree(sync: ZooSync, path: str, *, show_data: bool) -> Tree:
    tree = Tree(_format_label(sync, path, show_data=show_data))
    _add_children(sync, tree, path, show_data=show_data)
    return tree


def _add_children(sync: ZooSync, tree: Tree, path: str, *, show_data: bool):
    for name in sync.get_children(path):
        child = join_path(path, name)
        subtree = tree.add(_format_label(sync, child, show_data=show_data))
        _add_children(sync, subtree, child, show_data=show_data)


def _format_label(sync: ZooSync, path: str, *, show_data: bool) -> str:
    stat = sync.get_stat(path)
    label = escape(path if path == ROOT else get_name(path))

    if stat.is_ephemeral:
        label += " [dim](ephemeral)[/dim]"

    if show_data and stat.data_length:
        preview = sync.get_data(path).decode(errors="replace")
        if len(preview) > MAX_DATA_PREVIEW:
            preview = preview[:MAX_DATA_PREVIEW] + "..."
        label += f" [cyan]= {escape(preview)}[/cyan]"

    return label
