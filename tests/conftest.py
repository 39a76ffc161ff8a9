import pathlib
import sys
import threading
from io import BytesIO

import pandas as pd
import pytest
from PIL import Image

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from certbatch.app import create_app
from certbatch.models import SendOutcome


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


def make_template(width=800, height=600, fmt="PNG", color=(255, 255, 255)) -> bytes:
    mode = "RGB"
    image = Image.new(mode, (width, height), color)
    buffer = BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_noisy_template(width=400, height=300) -> bytes:
    image = Image.effect_noise((width, height), 64).convert("RGB")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def make_xlsx(rows, columns=None) -> bytes:
    frame = pd.DataFrame(rows, columns=columns)
    buffer = BytesIO()
    frame.to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


class FakeMailer:
    """Records sends; addresses listed in ``fail`` return failed outcomes."""

    def __init__(self, fail=(), raise_for=()):
        self.fail = set(fail)
        self.raise_for = set(raise_for)
        self.sent = []
        self._lock = threading.Lock()

    def send_certificate(self, recipient, certificate):
        with self._lock:
            self.sent.append((recipient, certificate.file_name))
        if recipient in self.raise_for:
            raise ConnectionError(f"boom {recipient}")
        if recipient in self.fail:
            return SendOutcome(recipient=recipient, ok=False, detail="refused")
        return SendOutcome(recipient=recipient, ok=True, detail="sent")


@pytest.fixture
def template_bytes():
    return make_template()


@pytest.fixture
def fake_mailer():
    return FakeMailer()


@pytest.fixture
def app(tmp_path, monkeypatch, fake_mailer):
    monkeypatch.setenv("SITE_ROOT", str(tmp_path))
    application = create_app(mailer=fake_mailer)
    application.config["TESTING"] = True
    yield application


@pytest.fixture
def client(app):
    return app.test_client()
