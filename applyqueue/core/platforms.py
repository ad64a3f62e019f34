"""
平台识别：根据投递链接的 host 选择投递策略。未知/无法解析一律归为 other。
"""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlsplit


class Platform(str, Enum):
    LINKEDIN = "linkedin"
    INDEED = "indeed"
    GREENHOUSE = "greenhouse"
    LEVER = "lever"
    OTHER = "other"


# 按顺序匹配 host 子串
_HOST_MARKERS: list[tuple[str, Platform]] = [
    ("linkedin.com", Platform.LINKEDIN),
    ("indeed.com", Platform.INDEED),
    ("greenhouse.io", Platform.GREENHOUSE),
    ("lever.co", Platform.LEVER),
]

PLATFORM_DOMAINS = {
    Platform.LINKEDIN: "linkedin.com",
    Platform.INDEED: "indeed.com",
}


def url_host(url: str | None) -> str:
    raw = (url or "").strip()
    if not raw:
        return ""
    if "://" not in raw:
        raw = f"https://{raw}"
    try:
        return (urlsplit(raw).hostname or "").lower()
    except ValueError:
        return ""


def classify(apply_url: str | None) -> Platform:
    host = url_host(apply_url)
    for marker, platform in _HOST_MARKERS:
        if marker in host:
            return platform
    return Platform.OTHER


def is_on_domain(url: str | None, domain: str) -> bool:
    """url 的 host 是否属于 domain（含子域名）。"""
    host = url_host(url)
    return bool(host) and (host == domain or host.endswith(f".{domain}"))
