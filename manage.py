import json
import os

import click
from flask import current_app
from flask.cli import FlaskGroup

from certbatch.app import create_app
from certbatch.constants import (
    DEFAULT_FONT_COLOR,
    DEFAULT_FONT_FAMILY,
    DEFAULT_FONT_SIZE_PX,
    DEFAULT_X_PERCENT,
    DEFAULT_Y_PERCENT,
)
from certbatch.errors import FatalBatchError, InputValidationError, RenderError
from certbatch.services.pipeline import process_upload
from certbatch.services.renderer import default_fonts, load_template, render_preview
from certbatch.shared.layout import build_layout
from certbatch.shared.storage import write_atomic


cli = FlaskGroup(create_app=create_app)


def layout_options(func):
    options = [
        click.option("--font", "font_family", default=DEFAULT_FONT_FAMILY, show_default=True),
        click.option("--size", "font_size_px", default=DEFAULT_FONT_SIZE_PX, type=int, show_default=True),
        click.option("--color", "color_hex", default=DEFAULT_FONT_COLOR, show_default=True),
        click.option("--x", "x_percent", default=DEFAULT_X_PERCENT, type=float, show_default=True),
        click.option("--y", "y_percent", default=DEFAULT_Y_PERCENT, type=float, show_default=True),
        click.option(
            "--fit-width",
            "fit_width_percent",
            default=None,
            type=float,
            help="Shrink long names to fit this percent of the template width",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _read(path: str) -> bytes:
    with open(path, "rb") as fh:
        return fh.read()


@cli.command("generate")
@click.option("--sheet", "sheet_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--template", "template_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_dir", required=True, type=click.Path(file_okay=False))
@click.option("--send", is_flag=True, help="Email each certificate to its recipient")
@layout_options
def generate(sheet_path: str, template_path: str, out_dir: str, send: bool, **layout_values):
    """Generate a ZIP of certificates from a spreadsheet."""
    try:
        layout = build_layout(**layout_values)
        outcome = process_upload(
            _read(sheet_path),
            _read(template_path),
            layout,
            out_dir,
            filename=os.path.basename(sheet_path),
            mailer=current_app.extensions["certbatch.mailer"] if send else None,
            mail_workers=current_app.config["CERT_MAIL_WORKERS"],
            fonts=default_fonts(),
            progress=lambda done, total: click.echo(f"Generating {done}/{total} certificates...", err=True),
        )
    except InputValidationError as exc:
        raise click.UsageError(str(exc)) from exc
    except FatalBatchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps({**outcome.summary(), "zipFile": str(outcome.archive_path)}))


@cli.command("preview")
@click.option("--template", "template_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--name", default="", help="Recipient name; blank draws the sample name")
@click.option("--out", "out_path", default=None, type=click.Path(dir_okay=False))
@layout_options
def preview(template_path: str, name: str, out_path: str | None, **layout_values):
    """Render a single certificate to a PNG file."""
    try:
        layout = build_layout(**layout_values)
        certificate = render_preview(load_template(_read(template_path)), name, layout, default_fonts())
    except InputValidationError as exc:
        raise click.UsageError(str(exc)) from exc
    except (FatalBatchError, RenderError) as exc:
        raise click.ClickException(str(exc)) from exc
    target = out_path or certificate.file_name
    write_atomic(os.path.abspath(target), certificate.image_bytes)
    click.echo(target)


@cli.command("fonts")
def fonts():
    """List registered font families."""
    for family in default_fonts().families():
        click.echo(family)


if __name__ == "__main__":
    cli()
