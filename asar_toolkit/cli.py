"""ASAR Toolkit CLI."""

import json
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __version__
from .config import ToolkitConfig, configure_logging


def default_output(archive: Path) -> Path:
    """``app.asar`` -> ``app-modified.asar`` next to the input."""
    return archive.with_name(f"{archive.stem}-modified{archive.suffix}")


def format_size(size: int) -> str:
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024:
            return f"{size} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """ASAR Toolkit - Inspect, extract and patch Electron ASAR archives.

    \b
    Archives are rebuilt in memory: patch commands extract every
    payload, apply the change and write a fresh archive.
    """
    config = ToolkitConfig.from_env()
    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = config


@main.command("list")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print entries as JSON")
def list_files(archive: Path, as_json: bool):
    """List the files in an archive."""
    from .archive import parse_header

    try:
        entries = parse_header(archive.read_bytes()).descriptors()

        if as_json:
            records = [
                {
                    "path": e.path,
                    "size": e.size,
                    "offset": e.offset,
                    "executable": e.executable,
                    "unpacked": e.unpacked,
                }
                for e in entries
            ]
            click.echo(json.dumps(records, indent=2))
            return

        for entry in entries:
            flags = ""
            if entry.unpacked:
                flags += " [unpacked]"
            if entry.executable:
                flags += " [exec]"
            click.echo(f"{entry.size:>10}  {entry.path}{flags}")
        click.echo(f"\nFiles: {len(entries)}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output directory (default: <archive_name>_extracted), or output file with --file",
)
@click.option("-f", "--file", "file_path", help="Extract a single file")
def extract(archive: Path, output: Optional[Path], file_path: Optional[str]):
    """Extract files from an archive.

    Entries stored outside the archive (unpacked) are skipped.
    """
    from .archive import ArchiveReader

    try:
        with ArchiveReader(archive) as reader:
            if file_path:
                if output is None:
                    output = Path(file_path.replace("\\", "/").rstrip("/").rpartition("/")[2])
                output.write_bytes(reader.extract_file(file_path))
                click.echo(f"Created: {output}")
                return

            if output is None:
                output = archive.parent / f"{archive.stem}_extracted"

            click.echo(f"Opening: {archive}")
            click.echo(f"Output:  {output}")

            extracted_count = 0
            with click.progressbar(
                list(reader.extract_all(output)),
                label="Extracting",
                item_show_func=lambda x: x[0] if x else "",
            ) as items:
                for _ in items:
                    extracted_count += 1

            click.echo(f"Extracted: {extracted_count} files")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output archive (default: <directory>.asar)",
)
def pack(directory: Path, output: Optional[Path]):
    """Pack a directory into a new archive."""
    from .archive import pack_directory

    try:
        if output is None:
            output = directory.parent / f"{directory.name}.asar"
        data = pack_directory(directory)
        output.write_bytes(data)
        click.echo(f"Created: {output} ({format_size(len(data))})")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path")
def cat(archive: Path, path: str):
    """Print one file of an archive to stdout."""
    from .archive import extract_file

    try:
        click.echo(extract_file(archive.read_bytes(), path), nl=False)

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output archive (default: <archive_name>-modified.asar)",
)
@click.pass_obj
def replace(config: ToolkitConfig, archive: Path, path: str, source: Path, output: Optional[Path]):
    """Replace the content of an existing file with a local file."""
    from .archive import modify_package, parse_header
    from .archive.reader import resolve_file

    try:
        data = archive.read_bytes()
        resolve_file(parse_header(data), path)

        output = output or default_output(archive)
        output.write_bytes(
            modify_package(data, {path: source.read_bytes()}, max_workers=config.max_workers)
        )
        click.echo(f"Replaced: {path}")
        click.echo(f"Created:  {output}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output archive (default: <archive_name>-modified.asar)",
)
@click.pass_obj
def add(config: ToolkitConfig, archive: Path, path: str, source: Path, output: Optional[Path]):
    """Add a local file to an archive at PATH."""
    from .archive import add_files

    try:
        output = output or default_output(archive)
        output.write_bytes(
            add_files(archive.read_bytes(), {path: source.read_bytes()}, max_workers=config.max_workers)
        )
        click.echo(f"Added:   {path}")
        click.echo(f"Created: {output}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("paths", nargs=-1, required=True)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output archive (default: <archive_name>-modified.asar)",
)
@click.pass_obj
def delete(config: ToolkitConfig, archive: Path, paths: Tuple[str, ...], output: Optional[Path]):
    """Delete files or directories from an archive."""
    from .archive import delete_files

    try:
        output = output or default_output(archive)
        output.write_bytes(
            delete_files(archive.read_bytes(), paths, max_workers=config.max_workers)
        )
        for path in paths:
            click.echo(f"Deleted: {path}")
        click.echo(f"Created: {output}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def info(archive: Path):
    """Show a summary of an archive header."""
    from .archive import parse_header

    try:
        data = archive.read_bytes()
        header = parse_header(data)
        entries = header.descriptors()
        unpacked = sum(1 for e in entries if e.unpacked)
        payload = sum(e.size for e in entries if not e.unpacked)

        click.echo(f"Archive:      {archive}")
        click.echo(f"Size:         {format_size(len(data))}")
        click.echo(f"Header:       {header.header_size} bytes of JSON")
        click.echo(f"Files offset: {header.files_offset}")
        click.echo(f"Payload at:   {header.payload_offset}")
        click.echo(f"Files:        {len(entries)}")
        click.echo(f"Unpacked:     {unpacked}")
        click.echo(f"Payload:      {format_size(payload)}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
