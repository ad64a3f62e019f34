from applyqueue.core.profile import (
    ApplicantProfile,
    build_applicant_profile,
    describe_missing_fields,
    format_salary_expectation,
    validate_profile,
)
from applyqueue.core.profile_store import (
    get_owner_profile,
    load_applicant_profile,
    save_owner_profile,
)


def test_validate_profile_lists_missing_required_fields():
    missing = validate_profile(ApplicantProfile(first_name="Ada", email="  "))
    assert missing == ["lastName", "email", "resumeText"]
    assert describe_missing_fields(missing) == (
        "Missing required profile fields: lastName, email, resumeText"
    )


def test_validate_complete_profile(complete_profile):
    assert validate_profile(complete_profile) == []


def test_build_profile_prefers_optimized_resume_text():
    profile = build_applicant_profile(
        {
            "first_name": "Ada",
            "resume_text": "original",
            "optimized_resume_text": "tailored",
            "salary_min": 120000,
            "salary_max": 150000,
            "start_date_type": "next_year",
        }
    )
    assert profile.resume_text == "tailored"
    assert profile.salary_expectation == "$120k - $150k"
    # 未知的开始时间类型回落为默认值
    assert profile.start_date_type == "two_weeks"
    assert profile.authorized_to_work is True
    assert profile.requires_sponsorship is False


def test_build_profile_from_none_is_empty_and_invalid():
    profile = build_applicant_profile(None)
    assert validate_profile(profile) == ["firstName", "lastName", "email", "resumeText"]


def test_profile_round_trips_through_to_dict(complete_profile):
    assert build_applicant_profile(complete_profile.to_dict()) == complete_profile


def test_format_salary_expectation():
    assert format_salary_expectation(None, None) is None
    assert format_salary_expectation(90000, None) == "$90k"


def test_profile_store_saves_and_loads(isolated_db):
    assert get_owner_profile("u1") is None

    save_owner_profile(
        "u1",
        {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": "ada@example.com",
            "resume_text": "Analytical engine programmer.",
            "skills": ["python"],
            "not_a_field": "ignored",
        },
    )
    record = get_owner_profile("u1")
    assert record.first_name == "Ada"
    assert record.skills == ["python"]

    profile = load_applicant_profile("u1")
    assert validate_profile(profile) == []
    assert profile.skills == ("python",)

    save_owner_profile("u1", {"email": ""})
    assert validate_profile(load_applicant_profile("u1")) == ["email"]
