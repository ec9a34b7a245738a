"""Tests for the content filter."""

from activities.content_filter import DEFAULT_BANNED_TERMS, build_term_table, filter_results
from models.core_models import VariationResult
from models.modes import OutputKind


def result(url, description="", angle="", pose=""):
    return VariationResult(
        id=url.rsplit("/", 1)[-1],
        output_kind=OutputKind.IMAGE,
        image_url=url,
        description=description,
        angle=angle,
        pose=pose,
    )


class TestFilterResults:
    """Test cases for filter_results()."""

    def test_keeps_clean_results_in_order(self):
        results = [result("https://o/1.png", "A knight"), result("https://o/2.png", "A dragon")]

        report = filter_results(results)

        assert report.kept == results
        assert report.rejected == []
        assert not report.all_filtered

    def test_case_insensitive_match_in_any_label(self):
        results = [
            result("https://o/1.png", "I CANNOT create this image"),
            result("https://o/2.png", angle="Blocked view"),
            result("https://o/3.png", pose="Standing"),
        ]

        report = filter_results(results)

        assert [r.id for r in report.kept] == ["3.png"]
        assert [r.id for r in report.rejected] == ["1.png", "2.png"]

    def test_only_result_filtered(self):
        """Zero kept because of policy is distinct from zero returned."""
        filtered = filter_results([result("https://o/1.png", "This violates our content policy")])
        empty = filter_results([])

        assert filtered.all_filtered
        assert not empty.all_filtered
        assert empty.kept == [] and empty.rejected == []

    def test_custom_table(self):
        results = [result("https://o/1.png", "A red balloon")]

        assert filter_results(results, ("balloon",)).all_filtered
        assert filter_results(results, ()).kept == results

    def test_build_term_table(self):
        table = build_term_table(["  Gore ", "nsfw", ""])

        assert table[:len(DEFAULT_BANNED_TERMS)] == DEFAULT_BANNED_TERMS
        assert "gore" in table
        assert table.count("nsfw") == 1
