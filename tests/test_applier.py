from __future__ import annotations

from applyqueue.config import Settings
from applyqueue.core.actuation import ActuationError
from applyqueue.core.applier import apply_to_job, job_from_ref
from applyqueue.core.platforms import Platform

from fakes import CONFIRMED, FakeClient


def _ticking_clock(step: float = 0.25):
    now = [0.0]

    def clock():
        now[0] += step
        return now[0]

    return clock


def test_job_from_ref_classifies_platform():
    job = job_from_ref({"apply_url": "https://jobs.lever.co/acme/1", "title": "SRE"})
    assert job.platform == Platform.LEVER
    assert job.id == "https://jobs.lever.co/acme/1"
    assert job.cover_letter is None


def test_apply_to_job_navigates_dispatches_and_times(complete_profile):
    client = FakeClient(extract_result=CONFIRMED)
    session = client.make_session(55)
    logs: list[str] = []

    result = apply_to_job(
        client,
        session,
        {"id": "job-1", "apply_url": "https://boards.greenhouse.io/acme/jobs/1"},
        complete_profile,
        settings=Settings(),
        log_fn=lambda msg, level="info": logs.append(msg),
        clock=_ticking_clock(),
    )

    assert client.navigated == ["https://boards.greenhouse.io/acme/jobs/1"]
    assert result.success is True
    assert result.method == "form_fill"
    assert result.screenshot == b"png"
    assert result.duration_ms == 250
    assert any("开始自动投递" in line for line in logs)
    assert "   申请人: Ada Lovelace" in logs


def test_apply_to_job_near_budget_after_navigation_skips_strategy(complete_profile):
    client = FakeClient(near_budget_after_acts=0)
    result = apply_to_job(
        client,
        client.make_session(55),
        {"id": "job-1", "apply_url": "https://www.linkedin.com/jobs/view/1"},
        complete_profile,
        settings=Settings(),
    )
    assert client.acts == []
    assert result.success is False
    assert result.error.startswith("Timeout:")


def test_apply_to_job_navigation_error_is_a_failure_result(complete_profile):
    class _BrokenNav(FakeClient):
        def navigate(self, session, url):
            raise ActuationError("Navigation failed: net::ERR_NAME_NOT_RESOLVED")

    client = _BrokenNav()
    result = apply_to_job(
        client,
        client.make_session(55),
        {"id": "job-1", "apply_url": "https://careers.acme.com/1"},
        complete_profile,
        settings=Settings(),
    )
    assert result.success is False
    assert "ERR_NAME_NOT_RESOLVED" in result.error
    assert client.acts == []


def test_apply_to_job_screenshot_failure_is_ignored(complete_profile):
    class _NoShot(FakeClient):
        def screenshot(self, session):
            raise ActuationError("target closed")

    client = _NoShot(extract_result=CONFIRMED)
    result = apply_to_job(
        client,
        client.make_session(55),
        {"id": "job-1", "apply_url": "https://boards.greenhouse.io/acme/jobs/1"},
        complete_profile,
        settings=Settings(),
    )
    assert result.success is True
    assert result.screenshot is None


def test_apply_to_job_respects_ambiguous_defaults_setting(complete_profile):
    client = FakeClient(extract_result=CONFIRMED)
    apply_to_job(
        client,
        client.make_session(55),
        {"id": "job-1", "apply_url": "https://boards.greenhouse.io/acme/jobs/1"},
        complete_profile,
        settings=Settings(ambiguous_defaults=False),
    )
    assert not any("if it seems beneficial" in a for a in client.acts)
