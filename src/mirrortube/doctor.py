"""Health checks for the configuration and every configured mirror."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from mirrortube.config import Settings
from mirrortube.pool import EndpointPool
from mirrortube.probe import ProbeSelector


class CheckStatus(StrEnum):
    """Status for a doctor check item."""

    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


class CheckResult(BaseModel):
    """A single doctor check result."""

    name: str
    status: CheckStatus
    message: str
    details: dict[str, str] = Field(default_factory=dict)


class DoctorReport(BaseModel):
    """Aggregate report for all diagnostics."""

    checks: list[CheckResult]

    @property
    def healthy(self) -> bool:
        return all(check.status != CheckStatus.FAIL for check in self.checks)

    @property
    def exit_code(self) -> int:
        return 0 if self.healthy else 1


def _check_config_schema(
    config_path: Path | None, overrides: dict[str, Any] | None = None
) -> CheckResult:
    try:
        Settings.load(config_path=config_path, **(overrides or {}))
        return CheckResult(
            name="config-schema",
            status=CheckStatus.OK,
            message="Configuration schema is valid.",
        )
    except Exception as exc:
        return CheckResult(
            name="config-schema",
            status=CheckStatus.FAIL,
            message="Configuration schema validation failed.",
            details={"error": str(exc)},
        )


def _check_mirrors(settings: Settings, prober: ProbeSelector) -> list[CheckResult]:
    pool = EndpointPool(settings.pool.endpoints)
    checks: list[CheckResult] = []

    for endpoint in pool.members():
        result = prober.probe(
            endpoint,
            probe_path=settings.pool.probe_path,
            per_probe_timeout=settings.pool.probe_timeout,
        )
        details = {"elapsed": f"{result.elapsed_seconds:.2f}s"}
        if result.ok:
            checks.append(
                CheckResult(
                    name=f"mirror:{endpoint}",
                    status=CheckStatus.OK,
                    message="Mirror responded to probe.",
                    details=details,
                )
            )
        else:
            details["error"] = result.error
            checks.append(
                CheckResult(
                    name=f"mirror:{endpoint}",
                    status=CheckStatus.WARN,
                    message="Mirror did not respond to probe.",
                    details=details,
                )
            )

    if not any(check.status == CheckStatus.OK for check in checks):
        checks.append(
            CheckResult(
                name="mirror-pool",
                status=CheckStatus.FAIL,
                message="No configured mirror responded.",
                details={"attempted": str(len(checks))},
            )
        )
    return checks


def run_doctor(
    settings: Settings | None,
    config_path: Path | None = None,
    check_mirrors: bool = True,
    prober: ProbeSelector | None = None,
    overrides: dict[str, Any] | None = None,
) -> DoctorReport:
    """Run all health checks and return a structured report.

    ``settings`` is ``None`` when the configuration failed to load; the
    schema check then reports the failure and mirror probes are skipped.
    """
    checks = [_check_config_schema(config_path, overrides)]

    if settings is None:
        checks.append(
            CheckResult(
                name="mirror-probes",
                status=CheckStatus.WARN,
                message="Mirror probes skipped: configuration is invalid.",
            )
        )
    elif check_mirrors:
        checks.extend(_check_mirrors(settings, prober or ProbeSelector()))
    else:
        checks.append(
            CheckResult(
                name="mirror-probes",
                status=CheckStatus.WARN,
                message="Mirror probe checks were skipped.",
            )
        )

    return DoctorReport(checks=checks)
