"""Tests for article QA checks and SEO metrics."""

from app.services.content_quality import QA_CHECK_WEIGHTS, ContentQualityScorer


def _article(paragraph_words: int = 200) -> str:
    body = " ".join(["stability"] * paragraph_words)
    return (
        "<p>Running shoes protect your knees on long runs.</p>"
        "<h2>How do running shoes differ?</h2>"
        f"<p>{body} midsole</p>"
        "<h3>Heel drop</h3><ul><li>Low</li><li>High</li></ul>"
        "<h2>FAQ</h2><p>Answers.</p>"
        '<p><a href="/marathon-training-plan/">Plan</a></p>'
        "<table><tr><td>Model</td></tr></table>"
    )


def test_weights_sum_to_one_hundred() -> None:
    assert sum(QA_CHECK_WEIGHTS.values()) == 100


def test_score_content_passes_for_compliant_article() -> None:
    scorer = ContentQualityScorer()

    result = scorer.score_content(
        _article(),
        {
            "target_word_count": 150,
            "internal_links": ["https://blog.example.com/marathon-training-plan/"],
            "entity_gap_data": {"missing_entities": ["midsole", {"entity": "heel drop"}]},
            "neuron_data": {"terms": [{"term": "stability"}]},
        },
    )

    assert result.score == 100
    assert result.details["failed_checks"] == []
    assert result.details["summary"]["internal_links"] == 1


def test_score_content_flags_missing_structure_and_coverage() -> None:
    scorer = ContentQualityScorer()

    result = scorer.score_content(
        "<h1>Title</h1><p>Short text only.</p>",
        {
            "target_word_count": 1000,
            "entity_gap_data": {"missing_entities": ["cushioning"]},
            "neuron_data": None,
        },
    )

    assert result.score < 50
    assert set(result.details["failed_checks"]) >= {
        "word_count",
        "heading_structure",
        "internal_links",
        "entity_coverage",
        "faq_or_lists",
    }
    assert "nlp_terms" not in result.details["failed_checks"]


def test_compute_metrics_rewards_answer_friendly_structure() -> None:
    scorer = ContentQualityScorer(target_word_count=200)

    metrics = scorer.compute_metrics(_article(), "Running Shoes Guide", "running-shoes-guide")

    assert metrics.word_count > 200
    assert metrics.heading_structure == 80
    assert metrics.content_depth == 100
    assert metrics.aeo_score == 100


def test_compute_metrics_for_empty_content() -> None:
    metrics = ContentQualityScorer().compute_metrics("", "", "")

    assert metrics.word_count == 0
    assert metrics.aeo_score == 0
    assert metrics.content_depth == 0
    assert metrics.heading_structure == 20
