import pytest

from rtlflow.configuration import reset_settings_cache
from rtlflow.markup import parse_html
from rtlflow.scheduler import ManualHost


ARABIC = "مرحبا بكم في موقعنا"
ENGLISH = "Welcome to our site"


@pytest.fixture
def host():
    return ManualHost()


@pytest.fixture
def make_document(host):
    def _make(markup, **kwargs):
        kwargs.setdefault("ready_state", "complete")
        return parse_html(markup, host=host, **kwargs)

    return _make


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in (
        "RTLFLOW_THRESHOLD",
        "RTLFLOW_DEBOUNCE_MS",
        "RTLFLOW_SLICE_BUDGET_MS",
        "RTLFLOW_VISUAL_FEEDBACK",
        "RTLFLOW_IFRAME_HANDLING",
        "RTLFLOW_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings_cache()
    yield tmp_path
    reset_settings_cache()

