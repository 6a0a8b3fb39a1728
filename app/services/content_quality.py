"""Deterministic quality checks and SEO metrics for generated article HTML."""

from __future__ import annotations

import re
from typing import Any

from bs4 import BeautifulSoup

from app.services.optimizer.collaborators import QAResult, SeoMetrics

_WORD_RE = re.compile(r"\b\w+\b")
_FAQ_HEADING_RE = re.compile(r"\b(faq|frequently asked questions)\b", re.IGNORECASE)

# Relative weight of each QA check in the 0..100 score
QA_CHECK_WEIGHTS: dict[str, int] = {
    "word_count": 25,
    "heading_structure": 20,
    "internal_links": 15,
    "entity_coverage": 15,
    "nlp_terms": 15,
    "faq_or_lists": 10,
}


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _term_values(items: list[Any], *keys: str) -> list[str]:
    """Flatten a list of strings or dicts into lowercase terms."""
    terms: list[str] = []
    for item in items:
        if isinstance(item, str):
            value = item
        elif isinstance(item, dict):
            value = next((item[key] for key in keys if isinstance(item.get(key), str)), "")
        else:
            continue
        value = value.strip().lower()
        if value:
            terms.append(value)
    return terms


def _coverage(terms: list[str], text: str) -> tuple[float, list[str]]:
    if not terms:
        return 1.0, []
    missing = [term for term in terms if term not in text]
    return (len(terms) - len(missing)) / len(terms), missing


def _count_words(text: str) -> int:
    return len(_WORD_RE.findall(text))


class ContentQualityScorer:
    """Default scorer used for QA validation and the final weighted score."""

    def __init__(self, *, target_word_count: int = 4000) -> None:
        self.target_word_count = target_word_count

    def score_content(self, content: str, signals: dict[str, Any]) -> QAResult:
        """Run the weighted QA checks over article HTML."""
        soup = BeautifulSoup(content or "", "html.parser")
        text = soup.get_text(" ", strip=True)
        lowered = text.lower()
        word_count = _count_words(text)
        checks: list[dict[str, Any]] = []

        target = int(signals.get("target_word_count") or self.target_word_count)
        word_ratio = min(word_count / target, 1.0) if target > 0 else 1.0
        checks.append({
            "name": "word_count",
            "ratio": word_ratio,
            "passed": word_ratio >= 0.8,
            "details": {"count": word_count, "target": target},
        })

        h1_count = len(soup.find_all("h1"))
        h2_count = len(soup.find_all("h2"))
        h3_count = len(soup.find_all("h3"))
        heading_ratio = (
            (0.5 if h2_count else 0.0)
            + (0.25 if h3_count else 0.0)
            + (0.25 if h1_count == 0 else 0.0)
        )
        checks.append({
            "name": "heading_structure",
            "ratio": heading_ratio,
            "passed": h2_count > 0 and h1_count == 0,
            "details": {"h1": h1_count, "h2": h2_count, "h3": h3_count},
        })

        known_links = {str(url).rstrip("/") for url in _as_list(signals.get("internal_links"))}
        hrefs = [str(anchor.get("href") or "").strip() for anchor in soup.find_all("a")]
        internal_links = sum(
            1 for href in hrefs
            if href.startswith("/") or href.rstrip("/") in known_links
        )
        checks.append({
            "name": "internal_links",
            "ratio": 1.0 if internal_links else 0.0,
            "passed": internal_links > 0,
            "details": {"count": internal_links},
        })

        entity_data = _as_dict(signals.get("entity_gap_data"))
        entities = _term_values(_as_list(entity_data.get("missing_entities")), "entity", "name")
        entity_ratio, missing_entities = _coverage(entities, lowered)
        checks.append({
            "name": "entity_coverage",
            "ratio": entity_ratio,
            "passed": entity_ratio >= 0.6,
            "details": {"total": len(entities), "missing": missing_entities[:20]},
        })

        neuron_data = _as_dict(signals.get("neuron_data"))
        terms = _term_values(_as_list(neuron_data.get("terms")), "term", "text")
        terms_ratio, missing_terms = _coverage(terms, lowered)
        checks.append({
            "name": "nlp_terms",
            "ratio": terms_ratio,
            "passed": terms_ratio >= 0.6,
            "details": {"total": len(terms), "missing": missing_terms[:20]},
        })

        has_lists = bool(soup.find(["ul", "ol"]))
        has_faq = any(
            _FAQ_HEADING_RE.search(heading.get_text(" ", strip=True))
            for heading in soup.find_all(["h2", "h3"])
        )
        checks.append({
            "name": "faq_or_lists",
            "ratio": 1.0 if has_faq else 0.5 if has_lists else 0.0,
            "passed": has_faq or has_lists,
            "details": {"faq": has_faq, "lists": has_lists},
        })

        raw = sum(QA_CHECK_WEIGHTS[check["name"]] * check["ratio"] for check in checks)
        score = max(0, min(100, round(raw)))
        return QAResult(
            score=score,
            details={
                "score": score,
                "failed_checks": [check["name"] for check in checks if not check["passed"]],
                "checks": checks,
                "summary": {"word_count": word_count, "internal_links": internal_links},
            },
        )

    def compute_metrics(self, content: str, title: str, slug: str) -> SeoMetrics:
        """Independent 0..100 metrics feeding the final blended score."""
        soup = BeautifulSoup(content or "", "html.parser")
        text = soup.get_text(" ", strip=True)
        word_count = _count_words(text)
        headings = soup.find_all(["h2", "h3"])

        heading_structure = 0
        if soup.find("h2"):
            heading_structure += 40
        if soup.find("h3"):
            heading_structure += 20
        if not soup.find("h1"):
            heading_structure += 20
        if len(soup.find_all("h2")) >= 4:
            heading_structure += 20

        depth_words = min(word_count / max(self.target_word_count, 1), 1.0) * 60
        content_depth = round(
            depth_words
            + (20 if soup.find(["ul", "ol"]) else 0)
            + (20 if soup.find("table") else 0)
        )

        aeo_score = 0
        heading_texts = [heading.get_text(" ", strip=True) for heading in headings]
        if any(value.endswith("?") for value in heading_texts):
            aeo_score += 30
        if any(_FAQ_HEADING_RE.search(value) for value in heading_texts):
            aeo_score += 20
        if soup.find(["ul", "ol"]):
            aeo_score += 15
        first_paragraph = soup.find("p")
        if first_paragraph is not None:
            opening = first_paragraph.get_text(" ", strip=True).lower()
            if 0 < _count_words(opening) <= 60:
                aeo_score += 15
            title_words = [word for word in _WORD_RE.findall((title or "").lower()) if len(word) > 3]
            if not title_words and slug:
                title_words = [word for word in slug.lower().split("-") if len(word) > 3]
            if title_words and any(word in opening for word in title_words):
                aeo_score += 20

        return SeoMetrics(
            word_count=word_count,
            aeo_score=min(aeo_score, 100),
            content_depth=min(content_depth, 100),
            heading_structure=min(heading_structure, 100),
        )
