from __future__ import annotations

import os
from io import BytesIO

from flask import Blueprint, abort, current_app, jsonify, request, send_file, send_from_directory

from ..errors import FatalBatchError, InputValidationError, RenderError
from ..services.pipeline import process_upload
from ..services.renderer import default_fonts, load_template, render_preview
from ..shared.layout import layout_from_form
from ..shared.storage import ensure_dir

bp = Blueprint("certificates", __name__)

_FALSE_VALUES = {"0", "false", "no", "off"}


def _downloads_dir() -> str:
    return os.path.join(current_app.config["SITE_ROOT"], "downloads")


def _send_requested(value: str | None) -> bool:
    # Mail goes out unless the form opts out explicitly.
    return (value or "").strip().lower() not in _FALSE_VALUES


def _upload_bytes(field: str) -> tuple[bytes, str | None] | None:
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        return None
    return upload.read(), upload.filename


@bp.post("/upload")
def upload():
    excel = _upload_bytes("excel")
    template = _upload_bytes("template")
    if excel is None or template is None:
        return jsonify({"error": "Both Excel and Template files are required."}), 400

    spreadsheet_bytes, spreadsheet_name = excel
    template_bytes, _ = template
    mailer = None
    if _send_requested(request.form.get("sendEmails")):
        mailer = current_app.extensions["certbatch.mailer"]

    try:
        layout = layout_from_form(request.form)
        downloads = _downloads_dir()
        ensure_dir(downloads)
        outcome = process_upload(
            spreadsheet_bytes,
            template_bytes,
            layout,
            downloads,
            filename=spreadsheet_name,
            mailer=mailer,
            mail_workers=current_app.config["CERT_MAIL_WORKERS"],
            fonts=default_fonts(),
        )
    except InputValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except FatalBatchError as exc:
        current_app.logger.error("[BATCH] fatal error: %s", exc)
        return jsonify({"error": str(exc)}), 500
    except Exception:
        current_app.logger.exception("Error generating certificates")
        return jsonify({"error": "Internal Server Error"}), 500

    zip_name = outcome.archive_path.name
    return jsonify(
        {
            "message": "Certificates generated successfully!",
            "zipFile": f"/downloads/{zip_name}",
            "summary": outcome.summary(),
        }
    )


@bp.get("/downloads/<path:filename>")
def download(filename: str):
    if not filename.endswith(".zip"):
        abort(404)
    return send_from_directory(
        _downloads_dir(), filename, as_attachment=True, mimetype="application/zip"
    )


@bp.post("/preview")
def preview():
    template = _upload_bytes("template")
    if template is None:
        return jsonify({"error": "Template file is required."}), 400
    try:
        layout = layout_from_form(request.form)
        certificate = render_preview(
            load_template(template[0]),
            request.form.get("singleName"),
            layout,
            default_fonts(),
        )
    except InputValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except (FatalBatchError, RenderError) as exc:
        current_app.logger.error("Certificate preview failed: %s", exc)
        return jsonify({"error": "Failed to generate preview."}), 500
    return send_file(
        BytesIO(certificate.image_bytes),
        mimetype="image/png",
        as_attachment=True,
        download_name=certificate.file_name,
    )


@bp.get("/fonts")
def fonts():
    return jsonify({"fonts": default_fonts().families()})
