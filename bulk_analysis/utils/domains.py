"""Parsing of user-entered domain and keyword lists."""

import re
from typing import List


def clean_domain(domain: str) -> str:
    """Normalize a domain for comparison: no scheme, no www, no trailing slash."""
    if not domain:
        return ""
    normalized = domain.strip().lower()
    normalized = re.sub(r'^https?://', '', normalized)
    normalized = re.sub(r'^www\.', '', normalized)
    normalized = normalized.rstrip('/')
    return normalized.strip()


def parse_domain_text(text: str) -> List[str]:
    """
    Split pasted text (one domain per line) into unique cleaned domains.

    Order of first appearance is kept.
    """
    seen = set()
    domains = []
    for line in (text or "").splitlines():
        domain = clean_domain(line)
        if domain and domain not in seen:
            seen.add(domain)
            domains.append(domain)
    return domains


def parse_keywords(text: str) -> List[str]:
    """Comma-separated keyword input to a list, blanks dropped."""
    return [k.strip() for k in (text or "").split(",") if k.strip()]
