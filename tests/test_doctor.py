import os

from spotfinder.workflows import browser, doctor


def _clear_knobs(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SPOTFINDER_"):
            monkeypatch.delenv(name, raising=False)


def test_collect_environment_warnings_flags_malformed_knobs(monkeypatch):
    _clear_knobs(monkeypatch)
    monkeypatch.setenv("SPOTFINDER_MAX_RETRIES", "three")
    monkeypatch.setenv("SPOTFINDER_BATCH_DELAY", "-1")
    monkeypatch.setenv("SPOTFINDER_HEADLESS", "maybe")
    monkeypatch.setenv("SPOTFINDER_REQUEST_DELAY", "1.5")

    warnings = doctor.collect_environment_warnings()
    codes = {item.get("code") for item in warnings}

    assert codes == {"invalid_max_retries", "invalid_batch_delay", "invalid_headless"}


def test_collect_environment_warnings_unknown_knob(monkeypatch):
    _clear_knobs(monkeypatch)
    monkeypatch.setenv("SPOTFINDER_API_TOKEN", "abcdefghijklmnop")

    warnings = doctor.collect_environment_warnings()

    assert warnings[0]["code"] == "invalid_api_token"
    assert "unknown setting" in warnings[0]["message"]
    assert "abcdefghijklmnop" not in warnings[0]["message"]


def test_doctor_report_playwright_missing(monkeypatch, tmp_path):
    _clear_knobs(monkeypatch)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(browser, "async_playwright", None, raising=False)

    report = doctor.build_doctor_report()
    checks = {c["name"]: c for c in report["checks"]}

    assert report["ok"] is False
    assert checks["playwright"]["status"] == "missing"
    assert checks["dotenv"]["level"] == "info"


def test_doctor_report_lists_overrides(monkeypatch, tmp_path):
    _clear_knobs(monkeypatch)
    (tmp_path / ".env").write_text("SPOTFINDER_HEADLESS=0\n")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(browser, "async_playwright", object(), raising=False)
    monkeypatch.setenv("SPOTFINDER_MAX_CONCURRENT", "4")

    report = doctor.build_doctor_report()
    checks = {c["name"]: c for c in report["checks"]}

    assert report["ok"] is True
    assert checks["dotenv"]["status"] == "ok"
    assert checks["SPOTFINDER_MAX_CONCURRENT"]["value"] == "4"
    assert checks["SPOTFINDER_MAX_CONCURRENT"]["detail"] == "override applied"
    assert report["effective_config"]["max_concurrent"] == 4
    assert checks["lxml"]["status"] == "ok"


def test_format_doctor_report():
    report = {
        "generated_at": "2026-01-01T00:00:00Z",
        "checks": [{"name": "playwright", "status": "missing", "level": "warn", "remedy": "Install it."}],
        "environment_warnings": [{"code": "invalid_headless", "message": "bad", "remedy": "Fix it."}],
    }

    text = doctor.format_doctor_report(report)

    assert text.startswith("Spotfinder doctor\n")
    assert "- [warn] playwright: missing" in text
    assert "- invalid_headless: bad" in text
    assert text.endswith("\n")


def test_redact_value():
    assert doctor.redact_value("abcdefghijklmnop") == "abcd...mnop"
    assert doctor.redact_value("short") == "*****"
    assert doctor.redact_value("") == ""
