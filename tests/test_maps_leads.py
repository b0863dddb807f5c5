import json

import pytest
import requests

import maps_leads
from webhook_client import CsvPayload, DownloadUrlPayload, TransportError


class FakeDownload:
    def __init__(self, chunks, status=200):
        self.chunks = chunks
        self.status = status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.exceptions.HTTPError(f"{self.status} Error")

    def iter_content(self, chunk_size=1):
        return iter(self.chunks)


class FakeGetSession:
    def __init__(self, download):
        self.download = download
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.download


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("MAPS_LEADS_QUERY", "MAPS_LEADS_LOCATION", "MAPS_LEADS_RESULTS", "MAPS_LEADS_WEBHOOK_URL", "MAPS_LEADS_OUTPUT_DIR", "MAPS_LEADS_STORAGE", "MAPS_LEADS_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def _args(workdir, *extra):
    return [
        "--storage-path",
        str(workdir / "storage.json"),
        "--output-dir",
        str(workdir / "out"),
        "--log-level",
        "WARNING",
        *extra,
    ]


def _stored_runs(workdir):
    return json.loads((workdir / "storage.json").read_text(encoding="utf-8"))["remainingRuns"]


def test_render_csv_payload(tmp_path):
    path = maps_leads.render_download(CsvPayload("a,b\n1,2", "../escape.csv"), str(tmp_path / "out"))
    assert path == tmp_path / "out" / "escape.csv"
    assert path.read_text(encoding="utf-8") == "a,b\n1,2"


def test_render_download_url_payload(tmp_path):
    session = FakeGetSession(FakeDownload([b"x,y\n", b"", b"1,2\n"]))
    payload = DownloadUrlPayload("https://files.example.com/l.csv", "leads.csv")

    path = maps_leads.render_download(payload, str(tmp_path), session=session, timeout=10)

    assert path.read_bytes() == b"x,y\n1,2\n"
    assert session.calls == [("https://files.example.com/l.csv", {"stream": True, "timeout": 10})]


def test_render_download_url_http_error(tmp_path):
    session = FakeGetSession(FakeDownload([], status=404))
    with pytest.raises(requests.exceptions.HTTPError):
        maps_leads.render_download(DownloadUrlPayload("https://x.test/l.csv", "l.csv"), str(tmp_path), session=session)


def test_parse_args_reads_environment(monkeypatch, workdir):
    monkeypatch.setenv("MAPS_LEADS_QUERY", "roofers")
    monkeypatch.setenv("MAPS_LEADS_TIMEOUT", "12.5")
    args = maps_leads.parse_args([])
    assert args.query == "roofers"
    assert args.timeout == 12.5
    assert args.webhook_url == maps_leads.WEBHOOK_URL
    assert args.results == "20"


def test_main_success_writes_csv_and_spends_run(monkeypatch, workdir, capsys):
    sent = []

    def fake_submit(lead, url, session, timeout):
        sent.append((lead, url, timeout))
        return CsvPayload("a,b\n1,2", "google-maps-leads-2026-10-19.csv")

    monkeypatch.setattr(maps_leads, "submit_lead_request", fake_submit)

    code = maps_leads.main(_args(workdir, "--query", "dentists", "--location", "Austin", "--results", "80", "--webhook-url", "https://hooks.test/leads"))

    assert code == 0
    assert (workdir / "out" / "google-maps-leads-2026-10-19.csv").read_text(encoding="utf-8") == "a,b\n1,2"
    assert sent[0][0].number_of_results == 50
    assert sent[0][1] == "https://hooks.test/leads"
    assert sent[0][2] is None
    assert _stored_runs(workdir) == "2"
    out = capsys.readouterr().out
    assert "Maximum 50 results allowed" in out
    assert "Free searches remaining: 2 runs" in out


def test_main_failure_refunds_run(monkeypatch, workdir, capsys):
    def fake_submit(lead, url, session, timeout):
        raise TransportError("HTTP error! status: 500")

    monkeypatch.setattr(maps_leads, "submit_lead_request", fake_submit)

    code = maps_leads.main(_args(workdir, "--query", "dentists", "--location", "Austin"))

    assert code == 1
    assert _stored_runs(workdir) == "3"
    assert "Error: HTTP error! status: 500. Please try again." in capsys.readouterr().out


def test_main_validation_error(monkeypatch, workdir, capsys):
    monkeypatch.setattr(maps_leads, "submit_lead_request", lambda *a, **k: pytest.fail("should not send"))

    code = maps_leads.main(_args(workdir, "--location", "Austin"))

    assert code == 1
    assert "Please fill in all required fields" in capsys.readouterr().out


def test_main_exhausted_quota_blocks_run(monkeypatch, workdir, capsys):
    monkeypatch.setattr(maps_leads, "submit_lead_request", lambda *a, **k: pytest.fail("should not send"))
    (workdir / "storage.json").write_text(json.dumps({"remainingRuns": "0"}), encoding="utf-8")

    code = maps_leads.main(_args(workdir, "--query", "dentists", "--location", "Austin"))

    assert code == 1
    assert "Free search limit reached" in capsys.readouterr().out


def test_main_status_and_reset(workdir, capsys):
    assert maps_leads.main(_args(workdir, "--status")) == 0
    assert "Free searches remaining: 3 runs" in capsys.readouterr().out

    (workdir / "storage.json").write_text(json.dumps({"remainingRuns": "1"}), encoding="utf-8")
    assert maps_leads.main(_args(workdir, "--status")) == 0
    assert "1 run (last one!)" in capsys.readouterr().out

    assert maps_leads.main(_args(workdir, "--reset-quota")) == 0
    assert _stored_runs(workdir) == "3"


def test_parse_args_rejects_bad_timeout_env(monkeypatch, workdir, capsys):
    monkeypatch.setenv("MAPS_LEADS_TIMEOUT", "abc")
    with pytest.raises(SystemExit) as excinfo:
        maps_leads.parse_args([])
    assert excinfo.value.code == 2
    assert "--timeout" in capsys.readouterr().err


def test_parse_args_timeout_unset_means_no_timeout(workdir):
    assert maps_leads.parse_args([]).timeout is None
    assert maps_leads.parse_args(["--timeout", "3"]).timeout == 3.0
