"""Environment diagnostics for a discovery host.

Answers "will the fallback chain work here?" before a run: is the browser
strategy available, can the HTML parser load, which ``SPOTFINDER_*``
overrides are in effect and which of them ``ScrapeConfig.from_env`` will
silently ignore.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from bs4 import BeautifulSoup, FeatureNotFound
from dotenv import find_dotenv

from .browser import playwright_available
from .models import ScrapeConfig
from .scrape_config import ENV_PREFIX

WARN = "warn"
INFO = "info"

_SENSITIVE = ("key", "token", "secret", "password", "pass")

_KNOB_PARSERS: Dict[str, Callable[[str], Any]] = {
    "MAX_RETRIES": int,
    "MAX_CONCURRENT": int,
    "PAGE_TIMEOUT": float,
    "PROBE_TIMEOUT": float,
    "REQUEST_DELAY": float,
    "BATCH_DELAY": float,
}
_FLAG_KNOBS = ("HEADLESS",)
_FLAG_WORDS = {"0", "1", "true", "false", "yes", "no", "on", "off"}


@dataclass
class DoctorCheck:
    name: str
    ok: bool
    level: str = WARN
    detail: Optional[str] = None
    remedy: Optional[str] = None
    value: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return not self.ok and self.level == WARN

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None}
        data["status"] = "ok" if data.pop("ok") else "missing"
        return data


def redact_value(value: str, keep: int = 4) -> str:
    raw = (value or "").strip()
    if not raw:
        return ""
    if len(raw) <= keep * 2:
        return "*" * len(raw)
    return f"{raw[:keep]}...{raw[-keep:]}"


def _display(name: str, value: str) -> str:
    if any(word in name.lower() for word in _SENSITIVE):
        return redact_value(value)
    return value


def _knob_problem(knob: str, raw: str) -> Optional[str]:
    if knob in _FLAG_KNOBS:
        return None if raw.strip().lower() in _FLAG_WORDS else "expected a boolean"
    parser = _KNOB_PARSERS.get(knob)
    if parser is None:
        return "unknown setting"
    try:
        parsed = parser(raw)
    except (TypeError, ValueError):
        return f"expected {parser.__name__}"
    if parsed < 0:
        return "must not be negative"
    return None


def _prefixed_env() -> List[tuple]:
    return [(name, os.environ[name]) for name in sorted(os.environ) if name.startswith(ENV_PREFIX)]


def collect_environment_warnings() -> List[Dict[str, str]]:
    """Flag ``SPOTFINDER_*`` values that ``ScrapeConfig.from_env`` would ignore."""

    warnings: List[Dict[str, str]] = []
    for name, raw in _prefixed_env():
        knob = name[len(ENV_PREFIX):]
        problem = _knob_problem(knob, raw)
        if problem is None:
            continue
        warnings.append(
            {
                "code": f"invalid_{knob.lower()}",
                "message": f"{name}={_display(name, raw)}: {problem}; default used",
                "remedy": f"Fix or unset {name}.",
            }
        )
    return warnings


def _parser_check() -> DoctorCheck:
    try:
        BeautifulSoup("<p>ok</p>", "lxml")
    except FeatureNotFound:
        return DoctorCheck("lxml", False, detail="lxml parser unavailable; extraction will fail", remedy="Install lxml.")
    return DoctorCheck("lxml", True, detail="HTML parser ready")


def _browser_check() -> DoctorCheck:
    if playwright_available():
        return DoctorCheck("playwright", True, detail="browser strategy enabled")
    return DoctorCheck(
        "playwright",
        False,
        detail="browser strategy disabled; chain starts at http",
        remedy="Install Playwright and run `playwright install chromium`.",
    )


def _dotenv_check() -> DoctorCheck:
    path = find_dotenv(usecwd=True)
    return DoctorCheck("dotenv", bool(path), level=INFO, detail=path or "no .env file found; process environment only")


def _knob_checks() -> List[DoctorCheck]:
    checks = []
    for name, raw in _prefixed_env():
        problem = _knob_problem(name[len(ENV_PREFIX):], raw)
        checks.append(
            DoctorCheck(
                name,
                problem is None,
                detail="override applied" if problem is None else f"ignored: {problem}",
                remedy=None if problem is None else f"Fix or unset {name}.",
                value=_display(name, raw),
            )
        )
    return checks


def build_doctor_report() -> Dict[str, Any]:
    checks = [_browser_check(), _parser_check(), _dotenv_check(), *_knob_checks()]
    config = ScrapeConfig.from_env(dotenv=False)
    return {
        "generated_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "ok": not any(c.blocking for c in checks),
        "checks": [c.to_dict() for c in checks],
        "effective_config": {
            "max_retries": config.max_retries,
            "max_concurrent": config.max_concurrent,
            "request_delay": config.request_delay,
            "batch_delay": config.batch_delay,
            "headless": config.headless,
        },
        "environment_warnings": collect_environment_warnings(),
    }


def format_doctor_report(report: Dict[str, Any]) -> str:
    out = ["Spotfinder doctor", f"Generated: {report.get('generated_at')}", ""]
    for check in report.get("checks", []):
        head = f"- [{check.get('level', INFO)}] {check.get('name', 'check')}: {check.get('status', 'unknown')}"
        if check.get("value"):
            head += f" ({check['value']})"
        out.append(head)
        out.extend(f"  {key}: {check[key]}" for key in ("detail", "remedy") if check.get(key))

    config = report.get("effective_config") or {}
    if config:
        out.append("")
        out.append("Effective config: " + ", ".join(f"{k}={v}" for k, v in config.items()))

    warnings = report.get("environment_warnings") or []
    if warnings:
        out.append("")
        out.append("Environment warnings:")
        for warning in warnings:
            out.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
            if warning.get("remedy"):
                out.append(f"  remedy: {warning['remedy']}")
    return "\n".join(out).rstrip() + "\n"


__all__ = [
    "DoctorCheck",
    "build_doctor_report",
    "collect_environment_warnings",
    "format_doctor_report",
    "redact_value",
]
