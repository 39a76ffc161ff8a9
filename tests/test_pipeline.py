from __future__ import annotations

import zipfile
from io import BytesIO

import pytest
from PIL import Image

from certbatch.errors import ArchiveWriteError, EmptyInputError, InputValidationError, TemplateDecodeError
from certbatch.models import make_row
from certbatch.services.archive import ArchiveBuilder
from certbatch.services.dispatcher import NotificationDispatcher
from certbatch.services.pipeline import process_upload, run_batch
from certbatch.services.renderer import load_template
from certbatch.shared.fonts import FontRegistry
from certbatch.shared.layout import build_layout
from conftest import FakeMailer, make_noisy_template, make_template, make_xlsx


@pytest.fixture
def layout():
    return build_layout(font_size_px=60, color_hex="#000000", x_percent=50, y_percent=52)


SCENARIO_ROWS = [
    {"Name": "Alice", "Email": "a@x.com"},
    {"Name": "", "Email": "b@x.com"},
    {"Name": "Carol", "Email": "bad"},
]


def test_scenario_summary_and_archive(tmp_path, layout):
    mailer = FakeMailer()

    outcome = process_upload(
        make_xlsx(SCENARIO_ROWS),
        make_template(800, 600),
        layout,
        tmp_path,
        filename="people.xlsx",
        mailer=mailer,
        fonts=FontRegistry(),
    )

    assert outcome.summary() == {"total": 3, "rendered": 2, "sent": 1, "failed": 0}
    assert outcome.skipped == 1
    assert mailer.sent == [("a@x.com", "Alice.png")]
    with zipfile.ZipFile(outcome.archive_path) as zf:
        assert sorted(zf.namelist()) == ["Alice.png", "Carol.png"]
        for name in zf.namelist():
            image = Image.open(BytesIO(zf.read(name)))
            image.load()
            assert image.size == (800, 600)


def test_rendered_count_matches_named_rows(tmp_path, layout):
    names = ["Dana", None, "Eve", "   ", "Frank", 12345]
    rows = [make_row({"Name": name}) for name in names]
    template = load_template(make_template(200, 100))

    outcome = run_batch(rows, template, layout, ArchiveBuilder(tmp_path / "a.zip").open(), fonts=FontRegistry())

    assert outcome.rendered == 4
    assert outcome.skipped == 2
    assert sorted(outcome.file_names) == ["12345.png", "Dana.png", "Eve.png", "Frank.png"]


def test_invalid_email_still_archived_without_send(tmp_path, layout):
    mailer = FakeMailer()
    rows = [make_row({"Name": "Gina", "Email": "not-an-email"})]
    template = load_template(make_template(200, 100))

    outcome = run_batch(
        rows,
        template,
        layout,
        ArchiveBuilder(tmp_path / "a.zip").open(),
        dispatcher=NotificationDispatcher(mailer),
        fonts=FontRegistry(),
    )

    assert mailer.sent == []
    assert outcome.file_names == ("Gina.png",)
    assert (outcome.emails_sent, outcome.emails_failed) == (0, 0)


def test_no_email_column_means_no_dispatch(tmp_path, layout):
    mailer = FakeMailer()

    outcome = process_upload(
        make_xlsx([{"Name": "Hank"}]),
        make_template(200, 100),
        layout,
        tmp_path,
        mailer=mailer,
        fonts=FontRegistry(),
    )

    assert mailer.sent == []
    assert outcome.rendered == 1


def test_send_failures_are_counted_not_raised(tmp_path, layout):
    mailer = FakeMailer(fail={"b@x.com"}, raise_for={"c@x.com"})
    rows = [
        {"Name": "A", "Email": "a@x.com"},
        {"Name": "B", "Email": "b@x.com"},
        {"Name": "C", "Email": "c@x.com"},
    ]

    outcome = process_upload(
        make_xlsx(rows), make_template(200, 100), layout, tmp_path, mailer=mailer, fonts=FontRegistry()
    )

    assert outcome.summary() == {"total": 3, "rendered": 3, "sent": 1, "failed": 2}
    assert outcome.archive_path.exists()


def test_progress_is_monotonic_and_completes_once(tmp_path, layout):
    seen = []
    rows = [{"Name": "A"}, {"Name": ""}, {"Name": "C"}]

    process_upload(
        make_xlsx(rows),
        make_template(200, 100),
        layout,
        tmp_path,
        progress=lambda done, total: seen.append((done, total)),
        fonts=FontRegistry(),
    )

    assert seen == [(1, 3), (2, 3), (3, 3)]


def test_progress_sink_errors_do_not_stop_batch(tmp_path, layout):
    def broken(done, total):
        raise RuntimeError("ui gone")

    outcome = process_upload(
        make_xlsx([{"Name": "A"}, {"Name": "B"}]),
        make_template(200, 100),
        layout,
        tmp_path,
        progress=broken,
        fonts=FontRegistry(),
    )

    assert outcome.rendered == 2


def test_render_error_skips_row(tmp_path, layout, monkeypatch):
    from certbatch.errors import RenderError
    from certbatch.services import pipeline

    real = pipeline.render_named

    def flaky(template, name, layout, fonts=None):
        if name == "Bad":
            raise RenderError("font rejected")
        return real(template, name, layout, fonts)

    monkeypatch.setattr(pipeline, "render_named", flaky)

    outcome = process_upload(
        make_xlsx([{"Name": "Good"}, {"Name": "Bad"}]),
        make_template(200, 100),
        layout,
        tmp_path,
        fonts=FontRegistry(),
    )

    assert outcome.rendered == 1
    assert outcome.render_failed == 1
    assert outcome.file_names == ("Good.png",)


def test_colliding_names_last_write_wins(tmp_path, layout):
    outcome = process_upload(
        make_xlsx([{"Name": "Ann-Lee"}, {"Name": "Ann Lee"}]),
        make_template(200, 100),
        layout,
        tmp_path,
        fonts=FontRegistry(),
    )

    assert outcome.rendered == 2
    assert outcome.file_names == ("Ann_Lee.png",)


def test_empty_spreadsheet_creates_no_archive(tmp_path, layout):
    with pytest.raises(EmptyInputError):
        process_upload(
            make_xlsx([], columns=["Name", "Email"]),
            make_template(200, 100),
            layout,
            tmp_path,
        )

    assert list(tmp_path.iterdir()) == []


def test_bad_template_creates_no_archive(tmp_path, layout):
    with pytest.raises(InputValidationError):
        process_upload(make_xlsx([{"Name": "A"}]), b"nope", layout, tmp_path)

    data = make_noisy_template()
    with pytest.raises(TemplateDecodeError):
        process_upload(make_xlsx([{"Name": "A"}]), data[: len(data) // 2], layout, tmp_path)

    assert list(tmp_path.iterdir()) == []


def test_archive_failure_is_fatal_and_discards(tmp_path, layout, monkeypatch):
    def _fail(src, dst):
        raise OSError("read-only filesystem")

    monkeypatch.setattr("certbatch.services.archive.commit_staging", _fail)

    with pytest.raises(ArchiveWriteError):
        process_upload(
            make_xlsx([{"Name": "A", "Email": "a@x.com"}]),
            make_template(200, 100),
            layout,
            tmp_path,
            mailer=FakeMailer(),
            fonts=FontRegistry(),
        )

    assert list(tmp_path.iterdir()) == []


def test_names_resembling_missing_markers_are_rendered(tmp_path, layout):
    rows = [{"Name": "NA"}, {"Name": "None"}, {"Name": "null"}, {"Name": "Alice"}]

    outcome = process_upload(
        make_xlsx(rows),
        make_template(400, 200),
        layout,
        tmp_path,
        filename="people.xlsx",
        fonts=FontRegistry(),
    )

    assert outcome.total_rows == 4
    assert outcome.rendered == 4
    assert sorted(outcome.file_names) == ["Alice.png", "NA.png", "None.png", "null.png"]
