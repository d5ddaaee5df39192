"""Group keywords into topical clusters sized for batch analysis."""

import logging
import math
from collections import Counter
from typing import Dict, Iterable, List, Optional

from ..config import MAX_KEYWORDS_PER_GROUP, MIN_KEYWORDS_PER_GROUP, STOP_WORDS
from ..models.domain import DomainRecord
from ..models.keywords import KeywordCluster, TargetPage
from ..utils.domains import parse_keywords

logger = logging.getLogger(__name__)

RELEVANCE_BY_PRIORITY = {1: "core", 2: "related"}


def _relevance(priority: int) -> str:
    return RELEVANCE_BY_PRIORITY.get(priority, "wider")


def _unique(keywords: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(keywords))


def extract_term_frequency(keywords: List[str]) -> Counter:
    """Count meaningful terms (longer than two letters, not stop words)."""
    frequency = Counter()
    for keyword in keywords:
        for term in keyword.split():
            if len(term) > 2 and term not in STOP_WORDS:
                frequency[term] += 1
    return frequency


def identify_core_terms(frequency: Counter, total_keywords: int) -> List[str]:
    threshold = max(3, total_keywords * 0.1)
    return [term for term, count in frequency.items() if count >= threshold]


def extract_secondary_themes(keywords: List[str], frequency: Counter) -> List[str]:
    threshold = max(2, len(keywords) * 0.05)
    candidates = [(t, c) for t, c in frequency.items() if c >= threshold and len(t) > 3]
    candidates.sort(key=lambda tc: tc[1], reverse=True)
    return [t for t, _ in candidates[:10]]


def create_thematic_groups(keywords: List[str], core_terms: List[str], frequency: Counter) -> List[dict]:
    """
    First pass groups by core terms, second pass by secondary themes
    (groups of at least five), everything else lands in 'Other'.
    Each keyword belongs to one group only.
    """
    groups = []
    ungrouped = list(keywords)

    for term in core_terms:
        members = [k for k in ungrouped if term in k]
        if members:
            groups.append({"keywords": members, "theme": term.capitalize(), "priority": 1})
            ungrouped = [k for k in ungrouped if k not in members]

    for term in extract_secondary_themes(ungrouped, frequency):
        members = [k for k in ungrouped if term in k]
        if len(members) >= 5:
            groups.append({"keywords": members, "theme": term.capitalize(), "priority": 2})
            ungrouped = [k for k in ungrouped if k not in members]

    if ungrouped:
        groups.append({"keywords": ungrouped, "theme": "Other", "priority": 3})

    return groups


def optimize_group_sizes(groups: List[dict]) -> List[KeywordCluster]:
    """Split oversized groups, merge undersized ones, consolidate leftovers."""
    ordered = sorted(groups, key=lambda g: (g["priority"], -len(g["keywords"])))
    final: List[KeywordCluster] = []
    pending: Optional[dict] = None

    for group in ordered:
        size = len(group["keywords"])

        if MIN_KEYWORDS_PER_GROUP <= size <= MAX_KEYWORDS_PER_GROUP:
            final.append(KeywordCluster(
                name=f"{group['theme']} Keywords",
                keywords=group["keywords"],
                relevance=_relevance(group["priority"]),
                priority=group["priority"],
            ))
            continue

        if size > MAX_KEYWORDS_PER_GROUP:
            chunks = math.ceil(size / MAX_KEYWORDS_PER_GROUP)
            chunk_size = math.ceil(size / chunks)
            for i in range(chunks):
                final.append(KeywordCluster(
                    name=f"{group['theme']} Keywords {i + 1}" if chunks > 1 else f"{group['theme']} Keywords",
                    keywords=group["keywords"][i * chunk_size:(i + 1) * chunk_size],
                    relevance=_relevance(group["priority"]),
                    priority=group["priority"],
                ))
            continue

        if pending is None:
            pending = {"name": group["theme"], "keywords": list(group["keywords"]), "themes": [group["theme"]]}
            continue

        pending["keywords"].extend(group["keywords"])
        pending["themes"].append(group["theme"])
        if len(pending["keywords"]) >= MIN_KEYWORDS_PER_GROUP:
            themes = pending["themes"]
            if len(themes) > 2:
                name = f"Mixed Keywords ({', '.join(themes[:2])}, etc.)"
            else:
                name = " & ".join(themes) + " Keywords"
            final.append(KeywordCluster(
                name=name,
                keywords=pending["keywords"][:MAX_KEYWORDS_PER_GROUP],
                relevance="related",
                priority=2,
            ))
            overflow = pending["keywords"][MAX_KEYWORDS_PER_GROUP:]
            pending = {"name": "Mixed", "keywords": overflow, "themes": ["Various"]} if overflow else None

    if pending and pending["keywords"]:
        if len(pending["themes"]) > 1:
            name = f"Other Keywords ({', '.join(pending['themes'])})"
        else:
            name = f"{pending['name']} Keywords"
        final.append(KeywordCluster(name=name, keywords=pending["keywords"], relevance="wider", priority=3))

    small = [c for c in final if len(c.keywords) < MIN_KEYWORDS_PER_GROUP]
    if len(small) > 2:
        final = [c for c in final if len(c.keywords) >= MIN_KEYWORDS_PER_GROUP]
        leftovers = [k for c in small for k in c.keywords]
        chunks = math.ceil(len(leftovers) / MAX_KEYWORDS_PER_GROUP)
        for i in range(chunks):
            final.append(KeywordCluster(
                name=f"Additional Keywords {i + 1}" if chunks > 1 else "Additional Keywords",
                keywords=leftovers[i * MAX_KEYWORDS_PER_GROUP:(i + 1) * MAX_KEYWORDS_PER_GROUP],
                relevance="wider",
                priority=4,
            ))

    return sorted(final, key=lambda c: c.priority)


def group_keywords_by_topic(keywords: Iterable[str]) -> List[KeywordCluster]:
    """Cluster keywords by shared terms; every cluster starts selected."""
    cleaned = _unique(k.strip().lower() for k in keywords if k and k.strip())
    if not cleaned:
        return []

    frequency = extract_term_frequency(cleaned)
    core_terms = identify_core_terms(frequency, len(cleaned))
    clusters = optimize_group_sizes(create_thematic_groups(cleaned, core_terms, frequency))
    logger.debug(f"Grouped {len(cleaned)} keywords into {len(clusters)} clusters")
    return clusters


def selected_keywords(clusters: Iterable[KeywordCluster]) -> List[str]:
    return _unique(k for c in clusters if c.selected for k in c.keywords)


def collect_keywords(
    mode: str,
    records: Iterable[DomainRecord] = (),
    target_pages: Iterable[TargetPage] = (),
    manual_keywords: str = ""
) -> List[str]:
    """
    Keywords for a set of records.

    'manual' mode parses the comma-separated input. 'target-pages' mode
    unions the keywords of each record's target pages and falls back to
    every active target page when the records reference none.
    """
    if mode == "manual":
        return _unique(parse_keywords(manual_keywords))

    pages: Dict[str, TargetPage] = {p.id: p for p in target_pages}
    keywords: List[str] = []
    for record in records:
        for page_id in record.target_page_ids:
            page = pages.get(page_id)
            if page:
                keywords.extend(page.keyword_list)

    if not keywords:
        for page in pages.values():
            if page.status != "active":
                continue
            keywords.extend(page.keyword_list)

    return _unique(keywords)
