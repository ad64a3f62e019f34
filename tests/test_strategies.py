from __future__ import annotations

from applyqueue.core.platforms import Platform
from applyqueue.core.strategies import (
    NO_CONFIRMATION_ERROR,
    REDIRECT_ERROR,
    JobToApply,
    StrategyContext,
    apply_via_generic_form,
    apply_via_indeed,
    apply_via_linkedin,
    run_strategy,
    select_strategy,
)

from fakes import CONFIRMED, FakeClient

LINKEDIN_URL = "https://www.linkedin.com/jobs/view/1"
INDEED_URL = "https://www.indeed.com/viewjob?jk=1"


def _ctx(client, profile, platform=Platform.GREENHOUSE, url="https://boards.greenhouse.io/acme/jobs/1", cover_letter=None, **kwargs):
    job = JobToApply(
        id="job-1",
        title="Backend Engineer",
        company="Acme",
        apply_url=url,
        platform=platform,
        cover_letter=cover_letter,
    )
    return StrategyContext(
        client=client,
        session=client.make_session(55),
        job=job,
        profile=profile,
        **kwargs,
    )


def test_generic_form_success_with_confirmation(complete_profile):
    client = FakeClient(performs={"": True}, extract_result=CONFIRMED)
    result = apply_via_generic_form(_ctx(client, complete_profile))

    assert result.success is True
    assert result.method == "form_fill"
    assert result.confirmation_text == "Thank you for applying!"
    assert result.platform == "greenhouse"
    assert any("first name" in a and "Ada" in a for a in client.acts)
    assert "Submit" in client.acts[-1]


def test_generic_form_without_confirmation_is_not_success(complete_profile):
    client = FakeClient(performs={"": True})
    result = apply_via_generic_form(_ctx(client, complete_profile))
    assert result.success is False
    assert result.error == NO_CONFIRMATION_ERROR


def test_generic_form_truncates_cover_letter(complete_profile):
    client = FakeClient(extract_result=CONFIRMED)
    apply_via_generic_form(_ctx(client, complete_profile, cover_letter="x" * 800))
    cover = [a for a in client.acts if "cover letter" in a][0]
    assert cover.endswith("x" * 500 + "...")
    assert "x" * 501 not in cover


def test_indeed_redirect_off_domain(complete_profile):
    client = FakeClient(urls=[INDEED_URL, "https://acme.wd5.myworkdayjobs.com/apply"])
    result = apply_via_indeed(_ctx(client, complete_profile, Platform.INDEED, INDEED_URL))

    assert result.success is False
    assert result.method == "redirect"
    assert result.error == REDIRECT_ERROR
    # 跳转后不再填写任何字段
    assert len(client.acts) == 1


def test_indeed_on_domain_submits(complete_profile):
    client = FakeClient(urls=[INDEED_URL, "https://smartapply.indeed.com/form"], extract_result=CONFIRMED)
    result = apply_via_indeed(_ctx(client, complete_profile, Platform.INDEED, INDEED_URL))
    assert result.success is True
    assert result.method == "easy_apply"


def test_linkedin_easy_apply_reaches_review(complete_profile):
    client = FakeClient(
        performs={"Easy Apply": True, "Next": True},
        urls=[LINKEDIN_URL],
        page_texts=["Contact info", "Additional questions", "Review your application"],
        extract_result=CONFIRMED,
    )
    result = apply_via_linkedin(_ctx(client, complete_profile, Platform.LINKEDIN, LINKEDIN_URL))

    assert result.success is True
    assert result.method == "easy_apply"
    assert client.acts[0].startswith("Click the 'Easy Apply'")
    assert client.acts[-1] == "Click the 'Submit application' button"
    assert sum("Next" in a for a in client.acts) == 2


def test_linkedin_falls_back_to_apply_and_detects_redirect(complete_profile):
    client = FakeClient(urls=[LINKEDIN_URL, "https://careers.acme.com/apply"])
    result = apply_via_linkedin(_ctx(client, complete_profile, Platform.LINKEDIN, LINKEDIN_URL))

    assert result.method == "redirect"
    assert result.success is False
    assert client.acts == [
        "Click the 'Easy Apply' button on the job posting",
        "Click the 'Apply' button on the job posting",
    ]


def test_linkedin_step_cap_is_failure(complete_profile):
    client = FakeClient(
        performs={"Easy Apply": True, "Next": True},
        urls=[LINKEDIN_URL],
        page_texts=["Additional questions"],
        extract_result=CONFIRMED,
    )
    result = apply_via_linkedin(
        _ctx(client, complete_profile, Platform.LINKEDIN, LINKEDIN_URL), max_steps=3
    )

    assert result.success is False
    assert "Exceeded 3 form steps" in result.error
    assert sum("Next" in a for a in client.acts) == 3
    assert not any("Submit" in a for a in client.acts)


def test_linkedin_no_advance_control_submits_directly(complete_profile):
    client = FakeClient(
        performs={"Easy Apply": True},
        urls=[LINKEDIN_URL],
        page_texts=["One page form"],
        extract_result=CONFIRMED,
    )
    result = apply_via_linkedin(_ctx(client, complete_profile, Platform.LINKEDIN, LINKEDIN_URL))
    assert result.success is True
    assert client.acts[-1] == "Click the 'Submit application' or 'Submit' button"


def test_linkedin_near_budget_before_loop_stops_without_more_acts(complete_profile):
    # Easy Apply(1) + email(2) + phone(3) 之后进入预算区
    client = FakeClient(
        performs={"Easy Apply": True, "Next": True},
        urls=[LINKEDIN_URL],
        page_texts=["Contact info"],
        near_budget_after_acts=3,
    )
    result = run_strategy(_ctx(client, complete_profile, Platform.LINKEDIN, LINKEDIN_URL))

    assert len(client.acts) == 3
    assert result.success is False
    assert result.is_timeout
    assert result.error.startswith("Timeout:")


def test_run_strategy_captures_exceptions(complete_profile):
    client = FakeClient(act_error=RuntimeError("element detached"))
    result = run_strategy(_ctx(client, complete_profile))
    assert result.success is False
    assert result.error == "element detached"


def test_ambiguous_defaults_can_be_disabled(complete_profile):
    client = FakeClient(extract_result=CONFIRMED)
    apply_via_generic_form(_ctx(client, complete_profile, ambiguous_defaults=None))
    assert not any("if it seems beneficial" in a for a in client.acts)

    client = FakeClient(extract_result=CONFIRMED)
    apply_via_generic_form(_ctx(client, complete_profile))
    assert any("if it seems beneficial" in a for a in client.acts)


def test_select_strategy_dispatch_table():
    assert select_strategy(Platform.INDEED) is apply_via_indeed
    assert select_strategy(Platform.GREENHOUSE) is apply_via_generic_form
    assert select_strategy(Platform.LEVER) is apply_via_generic_form
    assert select_strategy(Platform.OTHER) is apply_via_generic_form
