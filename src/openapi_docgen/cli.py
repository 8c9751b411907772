"""CLI entry point for openapi-docgen."""

import logging
from pathlib import Path

import click

from openapi_docgen.errors import DocgenError
from openapi_docgen.generator.assembler import DocumentAssembler, GenerationResult
from openapi_docgen.parser.docs import parse_handler_doc
from openapi_docgen.parser.manifest import Manifest, build_registry, load_manifest
from openapi_docgen.parser.render import render_handler_doc


def _generate(manifest_path: Path, title: str | None = None, version: str | None = None) -> GenerationResult:
    """Load a manifest and run one generation pass over it."""
    manifest = _load(manifest_path)
    settings = manifest.settings.with_overrides(title=title, version=version)
    assembler = DocumentAssembler(build_registry(manifest), settings)
    try:
        return assembler.generate(manifest.route_table())
    except DocgenError as e:
        raise click.ClickException(str(e)) from e


def _load(manifest_path: Path) -> Manifest:
    try:
        return load_manifest(manifest_path)
    except DocgenError as e:
        raise click.ClickException(str(e)) from e


def _echo_warnings(result: GenerationResult) -> None:
    for warning in result.warnings:
        click.echo(f"warning: {warning}", err=True)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """openapi-docgen: compile handler documentation into an OpenAPI document."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("manifest_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(path_type=Path), help="Output file for the document.")
@click.option("--format", "fmt", default="json", envvar="OPENAPI_DOCGEN_FORMAT", type=click.Choice(["json", "yaml"]), help="Output format.")
@click.option("--title", default=None, help="Override the document title.")
@click.option("--api-version", default=None, help="Override the API version.")
@click.option("--strict", is_flag=True, help="Treat warnings as errors.")
def build(manifest_path: Path, output: Path, fmt: str, title: str | None, api_version: str | None, strict: bool):
    """Generate the OpenAPI document described by a manifest."""
    click.echo(f"Reading {manifest_path}...")
    result = _generate(manifest_path, title=title, version=api_version)
    _echo_warnings(result)
    if strict and result.warnings:
        raise click.ClickException(f"{len(result.warnings)} warnings with --strict")

    try:
        text = result.serialize(fmt)
    except DocgenError as e:
        raise click.ClickException(str(e)) from e
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    click.echo(f"Found {len(result.document.paths)} paths. Document saved to {output}")


@main.command()
@click.argument("manifest_path", type=click.Path(exists=True, path_type=Path))
def check(manifest_path: Path):
    """Validate a manifest without writing a document."""
    result = _generate(manifest_path)
    _echo_warnings(result)
    components = result.document.components
    schema_count = len(components.schemas or {}) if components else 0
    click.echo(
        f"OK: {len(result.document.paths)} paths, {schema_count} schemas, "
        f"{len(result.warnings)} warnings"
    )


@main.command()
@click.argument("manifest_path", type=click.Path(exists=True, path_type=Path))
@click.argument("handler")
def canonical(manifest_path: Path, handler: str):
    """Print the canonical documentation text of one handler."""
    manifest = _load(manifest_path)
    entry = manifest.handlers.get(handler)
    if entry is None:
        raise click.ClickException(f"handler '{handler}' is not in {manifest_path}")

    shape = entry.returns.to_shape() if entry.returns else None
    try:
        descriptor = parse_handler_doc(
            handler,
            entry.doc,
            shape,
            default_error_schema=manifest.settings.default_error_schema,
            tags=entry.tags,
            security=entry.security,
        )
    except DocgenError as e:
        raise click.ClickException(str(e)) from e
    click.echo(render_handler_doc(descriptor), nl=False)
