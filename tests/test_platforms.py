import pytest

from applyqueue.core.platforms import Platform, classify, is_on_domain, url_host


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://www.linkedin.com/jobs/view/123", Platform.LINKEDIN),
        ("https://uk.indeed.com/viewjob?jk=abc", Platform.INDEED),
        ("https://boards.greenhouse.io/acme/jobs/42", Platform.GREENHOUSE),
        ("https://jobs.lever.co/acme/uuid", Platform.LEVER),
        ("https://careers.acme.com/apply/1", Platform.OTHER),
        ("jobs.lever.co/acme/uuid", Platform.LEVER),
    ],
)
def test_classify_by_host(url, expected):
    assert classify(url) == expected


@pytest.mark.parametrize("url", ["", None, "not a url at all", "http://[::1", "https://"])
def test_classify_never_raises(url):
    assert classify(url) == Platform.OTHER


def test_classify_ignores_path_mentions():
    # 只看 host，路径里出现 linkedin 不算
    assert classify("https://careers.acme.com/from/linkedin.com") == Platform.OTHER


def test_is_on_domain_matches_subdomains_only():
    assert is_on_domain("https://www.linkedin.com/jobs/view/1", "linkedin.com")
    assert is_on_domain("https://linkedin.com/", "linkedin.com")
    assert not is_on_domain("https://notlinkedin.com/", "linkedin.com")
    assert not is_on_domain("https://acme.wd5.myworkdayjobs.com/apply", "indeed.com")
    assert not is_on_domain("", "indeed.com")


def test_url_host_lowercases():
    assert url_host("HTTPS://WWW.Indeed.COM/viewjob") == "www.indeed.com"
