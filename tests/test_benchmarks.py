"""Tests for industry benchmark classification."""

import pytest

from pnc_dashboard.benchmarks import (
    INDUSTRY_BENCHMARKS_2024,
    PEER_GROUPS,
    calculate_industry_percentile,
    classify_metric,
    get_benchmark_analysis,
    get_company_size,
    get_industry_trends,
    get_peer_group,
    metric_value,
)
from pnc_dashboard.metrics import calculate_insurance_metrics

from conftest import balance_sheet, income_statement


def test_combined_ratio_large_bands():
    assert classify_metric("combinedRatio", 92, "large").rating == "excellent"
    assert classify_metric("combinedRatio", 103, "large").rating in ("fair", "poor", "critical")

    far_out = classify_metric("combinedRatio", 150, "large")
    assert far_out.rating == "outlier"
    assert far_out.percentile == 5


def test_shared_edge_takes_better_rating():
    assert classify_metric("combinedRatio", 95, "large").rating == "excellent"
    assert classify_metric("roe", 15, "large").rating == "excellent"


def test_beyond_excellent_is_high_percentile_outlier():
    lower_better = classify_metric("combinedRatio", 80, "large")
    higher_better = classify_metric("roe", 40, "large")
    assert (lower_better.rating, lower_better.percentile) == ("outlier", 95)
    assert (higher_better.rating, higher_better.percentile) == ("outlier", 95)
    assert classify_metric("roe", -20, "large").percentile == 5


def test_smaller_companies_get_looser_bands():
    assert classify_metric("combinedRatio", 98, "large").rating == "good"
    assert classify_metric("combinedRatio", 98, "small").rating == "excellent"


@pytest.mark.parametrize("metric,value", [
    ("unknownMetric", 10),
    ("combinedRatio", None),
    ("combinedRatio", "95"),
    ("combinedRatio", float("nan")),
])
def test_unknown_inputs_are_neutral(metric, value):
    result = classify_metric(metric, value, "large")
    assert result.rating == "unknown"
    assert result.percentile == 50


def test_snake_case_metric_names_accepted():
    assert classify_metric("combined_ratio", 92, "large").metric == "combinedRatio"
    assert calculate_industry_percentile("loss_ratio", 60, "large") == 90


def test_every_table_has_all_ratings_per_size():
    for metric, sizes in INDUSTRY_BENCHMARKS_2024.items():
        assert set(sizes) == {"large", "medium", "small"}
        for bands in sizes.values():
            assert list(bands) == ["excellent", "good", "fair", "poor", "critical"]
            assert [b.percentile for b in bands.values()] == [90, 75, 50, 25, 10]


@pytest.mark.parametrize("volume,expected", [
    (25_000, "large"),
    (10_000, "large"),
    (9_999, "medium"),
    (1_000, "medium"),
    (999, "small"),
    (0, "small"),
    (None, "medium"),
    ("big", "medium"),
])
def test_company_size(volume, expected):
    assert get_company_size(volume) == expected


def test_peer_group_lookup():
    assert get_peer_group("pgr").key == "personalLines"
    assert get_peer_group("RLI").key == "commercialLines"
    assert get_peer_group("LMND") is PEER_GROUPS["largeDiversified"]


def test_metric_value_reads_models_and_mappings():
    assert metric_value({"combinedRatio": 95.5}, "combinedRatio") == 95.5
    assert metric_value({"combined_ratio": 95.5}, "combinedRatio") == 95.5
    assert metric_value({"combinedRatio": True}, "combinedRatio") is None
    assert metric_value({}, "roe") is None


def test_metric_value_multi_word_names():
    m = calculate_insurance_metrics(
        {**income_statement("TRV", 2024), **balance_sheet("TRV", 2024)}, combined_ratio=97.3,
    )
    assert metric_value(m, "underwritingProfitMargin") == 2.7
    assert metric_value(m, "bookValuePerShare") == m.book_value_per_share
    assert metric_value({"underwriting_profit_margin": 2.7}, "underwritingProfitMargin") == 2.7


def test_benchmark_analysis_strengths_and_weaknesses():
    analysis = get_benchmark_analysis(
        "trv",
        {"combinedRatio": 92.0, "roe": 3.0, "lossRatio": 65.0},
        premium_volume=40_000,
    )
    assert analysis.ticker == "TRV"
    assert analysis.company_size == "large"
    assert analysis.peer_group.key == "largeDiversified"
    assert {f.metric for f in analysis.strengths} == {"combinedRatio", "lossRatio"}
    assert [f.metric for f in analysis.weaknesses] == ["roe"]
    # (90 + 10 + 90) / 3 = 63.3
    assert analysis.overall_rating == "good"


def test_benchmark_analysis_with_no_metrics_is_fair():
    analysis = get_benchmark_analysis("ZZZ", {})
    assert analysis.metrics == {}
    assert analysis.overall_rating == "fair"


def test_industry_trends_are_copies():
    trends = get_industry_trends()
    trends["roe"]["history"][2024] = 0
    assert get_industry_trends()["roe"]["history"][2024] == 12.3


@pytest.mark.parametrize("size", ["large", "medium", "small"])
@pytest.mark.parametrize("value", [15.0, 17.0, 19.9])
def test_expense_ratio_under_twenty_is_outlier(size, value):
    result = classify_metric("expenseRatio", value, size)
    assert (result.rating, result.percentile) == ("outlier", 95)


def test_expense_ratio_excellent_band_starts_at_twenty():
    assert classify_metric("expenseRatio", 20.0, "large").rating == "excellent"
    assert classify_metric("expenseRatio", 25.0, "large").rating == "excellent"
