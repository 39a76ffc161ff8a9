import json
import zipfile

import pytest

from conftest import make_template, make_xlsx
from manage import fonts, generate, preview


@pytest.fixture
def cli_app(app):
    app.cli.add_command(generate)
    app.cli.add_command(preview)
    app.cli.add_command(fonts)
    return app


def test_generate_cli_writes_archive(cli_app, tmp_path):
    sheet = tmp_path / "people.xlsx"
    sheet.write_bytes(make_xlsx([{"Name": "Alice"}, {"Name": ""}, {"Name": "Carol"}]))
    template = tmp_path / "template.png"
    template.write_bytes(make_template(400, 300))
    out_dir = tmp_path / "out"

    runner = cli_app.test_cli_runner()
    result = runner.invoke(
        args=[
            "generate",
            "--sheet",
            str(sheet),
            "--template",
            str(template),
            "--out",
            str(out_dir),
            "--size",
            "40",
        ]
    )

    assert result.exit_code == 0, result.output
    summary = json.loads(result.output.strip().splitlines()[-1])
    assert summary["rendered"] == 2
    with zipfile.ZipFile(summary["zipFile"]) as zf:
        assert sorted(zf.namelist()) == ["Alice.png", "Carol.png"]


def test_generate_cli_empty_sheet_is_usage_error(cli_app, tmp_path):
    sheet = tmp_path / "people.xlsx"
    sheet.write_bytes(make_xlsx([], columns=["Name"]))
    template = tmp_path / "template.png"
    template.write_bytes(make_template(100, 100))

    result = cli_app.test_cli_runner().invoke(
        args=["generate", "--sheet", str(sheet), "--template", str(template), "--out", str(tmp_path / "out")]
    )

    assert result.exit_code == 2
    assert not (tmp_path / "out").exists()


def test_preview_cli_writes_png(cli_app, tmp_path):
    template = tmp_path / "template.png"
    template.write_bytes(make_template(300, 200))
    target = tmp_path / "single.png"

    result = cli_app.test_cli_runner().invoke(
        args=["preview", "--template", str(template), "--name", "Alice", "--out", str(target)]
    )

    assert result.exit_code == 0, result.output
    assert target.read_bytes().startswith(b"\x89PNG")


def test_fonts_cli_lists_families(cli_app):
    result = cli_app.test_cli_runner().invoke(args=["fonts"])

    assert result.exit_code == 0
    assert "Georgia" in result.output
