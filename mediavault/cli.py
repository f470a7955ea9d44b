from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from rich.console import Console

from .core.config import Settings, get_settings
from .core.errors import MediavaultError
from .core.logging import configure_logging, level_from_name
from .core.storage import Storage, get_storage
from .domain import compute_content_hash, derive_image_data
from .services.media_service import MediaRef, MediaService
from .services.replace_service import ReplaceCoordinator

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_configuration_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except MediavaultError as exc:
        console.print(f"[red]{type(exc).__name__}:[/] {exc.message}")
        sys.exit(2)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Mediavault storage developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate configuration and storage settings")

    subparsers = parser.add_subparsers(dest="command")

    inspect_parser = subparsers.add_parser("inspect", help="Print dimensions, dominant color and thumbnail info")
    inspect_parser.add_argument("--file", required=True, help="Path to a local image")
    inspect_parser.add_argument(
        "--write-thumbnail",
        default=None,
        help="Write the generated thumbnail (if any) to this path.",
    )
    inspect_parser.set_defaults(func=_cmd_inspect)

    store_parser = subparsers.add_parser("store", help="Store a new image under a filename")
    _add_source_arguments(store_parser)
    store_parser.add_argument("--filename", required=True, help="Storage filename, e.g. alice/cat.gif")
    store_parser.set_defaults(func=_cmd_store)

    replace_parser = subparsers.add_parser("replace", help="Replace the bytes behind an existing media URL")
    _add_source_arguments(replace_parser)
    replace_parser.add_argument("--media-url", required=True, help="Current URL of the media record")
    replace_parser.add_argument("--thumbnail-url", default=None, help="Current thumbnail URL of the record")
    replace_parser.set_defaults(func=_cmd_replace)
    return parser


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to a local image")
    source.add_argument("--url", help="Remote URL to fetch the image from")


def _cmd_inspect(args: argparse.Namespace) -> None:
    """Derive image data for a local file and print it.

    Args:
        args: The command-line arguments.
    """
    buffer = _read_file(args.file)
    settings = get_settings()
    data = derive_image_data(
        buffer,
        thumbnail_width=settings.thumbnail_width,
        thumbnail_quality=settings.thumbnail_quality,
        palette_size=settings.palette_size,
    )
    console.print_json(
        data={
            "width": data.width,
            "height": data.height,
            "color": data.dominant_color,
            "size": len(buffer),
            "content_hash": compute_content_hash(buffer),
            "thumbnail_bytes": len(data.thumbnail) if data.thumbnail else None,
        }
    )
    if args.write_thumbnail and data.thumbnail:
        Path(args.write_thumbnail).write_bytes(data.thumbnail)
        console.print(f"[green]Thumbnail written to {args.write_thumbnail}[/]")


def _cmd_store(args: argparse.Namespace) -> None:
    """Store a new image and print the metadata to persist.

    Args:
        args: The command-line arguments.
    """
    settings, storage = _open_storage()
    try:
        service = MediaService(settings, storage)
        metadata = asyncio.run(service.store_new(args.filename, **_source_kwargs(args)))
    finally:
        storage.close()
    console.print_json(data=metadata.as_dict())


def _cmd_replace(args: argparse.Namespace) -> None:
    """Replace an existing object in place and print the updated metadata.

    Args:
        args: The command-line arguments.
    """
    settings, storage = _open_storage()
    try:
        coordinator = ReplaceCoordinator(settings, storage)
        ref = MediaRef(url=args.media_url, thumbnail_url=args.thumbnail_url)
        metadata = asyncio.run(coordinator.replace(ref, **_source_kwargs(args)))
    finally:
        storage.close()
    console.print_json(data=metadata.as_dict())


def _source_kwargs(args: argparse.Namespace) -> dict[str, object]:
    if args.file:
        return {"buffer": _read_file(args.file)}
    return {"source_url": args.url}


def _read_file(path: str) -> bytes:
    media_path = Path(path).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path.read_bytes()


def _open_storage() -> tuple[Settings, Storage]:
    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level), json_logs=False)
    return settings, get_storage(settings)


def _run_configuration_check() -> None:
    """Load the settings once and report the active storage configuration."""
    console.rule("[bold]Configuration Check")
    try:
        settings = get_settings()
    except ValidationError as exc:
        for error in exc.errors():
            console.print(f"[red]{error['msg']}[/]")
        sys.exit(1)

    console.print(f"[bold]backend[/]: {settings.storage_backend}")
    console.print(f"[bold]base url[/]: {settings.storage_base_url}")
    console.print(f"[bold]base path[/]: {settings.base_path or '(none)'}")
    console.print(f"[bold]max file size[/]: {settings.max_file_size_bytes} bytes")
    console.print("[green]Configuration looks good![/]")


if __name__ == "__main__":
    main()
