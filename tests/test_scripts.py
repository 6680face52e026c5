"""Exit codes and output of the command-line entry points."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from compra_agil.core.errors import AuthExpired, ServerError
from compra_agil.schemas import Opportunity
from compra_agil.services import ScrapeRunResult
from scripts import inspect_token, run_scrape, session_monitor

HOUR = 3600


class StubRunner:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.options = []

    async def run(self, options=None, *, progress=None) -> ScrapeRunResult:
        self.options.append(options)
        if self.error is not None:
            raise self.error
        return ScrapeRunResult(
            options=options,
            opportunities=[Opportunity.model_validate({"codigo": "A-1"})],
        )


def _install_runner(monkeypatch: pytest.MonkeyPatch, runner: StubRunner) -> None:
    monkeypatch.setattr(run_scrape, "build_runner", lambda settings, session_path=None: runner)


def test_run_scrape_writes_results(tmp_path: Path, monkeypatch, capsys) -> None:
    runner = StubRunner()
    _install_runner(monkeypatch, runner)

    exit_code = run_scrape.main(
        ["--region-metropolitana", "--days", "2", "--pages", "3", "--output-dir", str(tmp_path)]
    )

    assert exit_code == run_scrape.EXIT_OK
    options = runner.options[0]
    assert (options.region, options.days_back, options.max_pages) == (13, 2, 3)
    written = sorted(path.name for path in tmp_path.iterdir())
    assert len(written) == 2
    assert all(name.startswith("compra-agil") for name in written)
    assert "Total: 1 opportunities" in capsys.readouterr().out


def test_run_scrape_auth_failure_exits_two(tmp_path: Path, monkeypatch, capsys) -> None:
    _install_runner(monkeypatch, StubRunner(error=AuthExpired()))

    exit_code = run_scrape.main(["--output-dir", str(tmp_path)])

    assert exit_code == run_scrape.EXIT_REAUTH_REQUIRED
    assert "Re-auth required" in capsys.readouterr().err
    assert list(tmp_path.iterdir()) == []


def test_run_scrape_other_failure_exits_one(tmp_path: Path, monkeypatch) -> None:
    _install_runner(monkeypatch, StubRunner(error=ServerError("HTTP 503", status_code=503)))

    assert run_scrape.main(["--output-dir", str(tmp_path)]) == run_scrape.EXIT_FAILURE


def test_run_scrape_rejects_out_of_range_pages(monkeypatch) -> None:
    _install_runner(monkeypatch, StubRunner())

    assert run_scrape.main(["--pages", "80"]) == run_scrape.EXIT_FAILURE


@pytest.mark.parametrize(("hours", "expected"), [(48, 0), (10, 1), (2, 2)])
def test_session_monitor_exit_codes(make_token, write_session, capsys, hours, expected) -> None:
    path = write_session([{"name": "access_token", "value": make_token(hours * HOUR)}])

    exit_code = session_monitor.main(["--session-path", str(path)])

    assert exit_code == expected
    out = capsys.readouterr().out
    assert out.splitlines()[0].startswith("[")
    assert "- access_token:" in out


def test_session_monitor_missing_file_is_critical(tmp_path: Path, capsys) -> None:
    exit_code = session_monitor.main(["--session-path", str(tmp_path / "nope.json")])

    assert exit_code == 2
    assert capsys.readouterr().out.startswith("[CRITICAL]")


def test_inspect_token_prints_json(make_token, write_session, capsys) -> None:
    path = write_session(
        [
            {"name": "access_token", "value": make_token(HOUR)},
            {"name": "refresh_token", "value": make_token(10 * HOUR)},
        ]
    )

    assert inspect_token.main(["--session-path", str(path)]) == 0

    report = json.loads(capsys.readouterr().out)
    assert report["access_token"]["present"] is True
    assert report["refresh_token"]["is_expired"] is False
    assert report["error"] is None
