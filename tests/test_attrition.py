"""Unit tests for survival_report.attrition module.

Tests the sequential attrition fold, its count invariants and the
agreement between the fold and a one-shot conjunction filter.
"""
import pytest
import pandas as pd

from survival_report.attrition import AttritionResult, apply_criteria, compute_attrition
from survival_report.criteria import Comparison, Criterion, Custom, FieldPresent, SchemaError


class TestComputeAttrition:
    """Tests for compute_attrition function."""

    def test_known_sequence(self, small_cohort, four_criteria):
        """Test counts on a hand-checked cohort."""
        result = compute_attrition(small_cohort, four_criteria)

        assert result.initial_n == 10
        assert result.remaining == [8, 6, 5, 3]
        assert result.excluded == [2, 2, 1, 2]
        assert result.final_n == 3
        assert sorted(result.cohort["subject_id"]) == [1, 7, 10]

    def test_labels_carried_through(self, small_cohort, four_criteria):
        """Test that descriptions and complements are passed through unchanged."""
        result = compute_attrition(small_cohort, four_criteria)

        assert result.descriptions == [c.description for c in four_criteria]
        assert result.complements[0] == "Missing ECOG"
        assert result.complements[1] == "Excluded: not physician Karnofsky available"
        assert result.complements[3] == "Weight loss missing or negative"

    def test_remaining_non_increasing(self, synthetic_survival, four_criteria):
        """Test that remaining N never increases."""
        result = compute_attrition(synthetic_survival, four_criteria)

        counts = [result.initial_n] + result.remaining
        assert all(a >= b for a, b in zip(counts, counts[1:]))

    def test_excluded_consistent_with_remaining(self, synthetic_survival, four_criteria):
        """Test excluded[i] == remaining[i-1] - remaining[i]."""
        result = compute_attrition(synthetic_survival, four_criteria)

        previous = [result.initial_n] + result.remaining[:-1]
        assert result.excluded == [p - r for p, r in zip(previous, result.remaining)]
        assert sum(result.excluded) == result.initial_n - result.final_n

    def test_final_matches_conjunction(self, synthetic_survival, four_criteria):
        """Test that the fold ends where the AND of all criteria does."""
        result = compute_attrition(synthetic_survival, four_criteria)
        filtered = apply_criteria(synthetic_survival, four_criteria)

        assert result.final_n == len(filtered)
        pd.testing.assert_frame_equal(result.cohort, filtered)

    def test_zero_criteria(self, small_cohort):
        """Test that no criteria leaves the dataset intact."""
        result = compute_attrition(small_cohort, [])

        assert result.rows == []
        assert result.initial_n == 10
        assert result.final_n == 10
        pd.testing.assert_frame_equal(result.cohort, small_cohort)

    def test_empty_dataset(self, small_cohort, four_criteria):
        """Test an empty dataset gives all-zero counts."""
        empty = small_cohort.iloc[0:0]

        result = compute_attrition(empty, four_criteria)

        assert result.initial_n == 0
        assert result.remaining == [0, 0, 0, 0]
        assert result.excluded == [0, 0, 0, 0]
        assert result.cohort.empty

    def test_criterion_excluding_nobody(self, small_cohort):
        """Test a step with zero exclusions."""
        criteria = [Criterion("Age recorded", FieldPresent("age"))]

        result = compute_attrition(small_cohort, criteria)

        assert result.remaining == [10]
        assert result.excluded == [0]

    def test_criterion_excluding_everybody(self, small_cohort, four_criteria):
        """Test that later steps after total exclusion report zeros."""
        criteria = [Criterion("Aged over 100", Comparison("age", ">", 100))] + four_criteria

        result = compute_attrition(small_cohort, criteria)

        assert result.remaining == [0, 0, 0, 0, 0]
        assert result.excluded == [10, 0, 0, 0, 0]

    def test_missing_values_excluded(self, small_cohort):
        """Test that a missing field counts as failing."""
        criteria = [Criterion("Weight loss at most 20", Comparison("weight_loss", "<=", 20))]

        result = compute_attrition(small_cohort, criteria)

        assert result.excluded == [2]

    def test_order_dependence(self, small_cohort, four_criteria):
        """Test that per-step counts depend on order while the final N does not."""
        forward = compute_attrition(small_cohort, four_criteria)
        backward = compute_attrition(small_cohort, list(reversed(four_criteria)))

        assert backward.remaining == [7, 6, 4, 3]
        assert forward.excluded != backward.excluded
        assert forward.final_n == backward.final_n

    def test_unknown_column_fails_before_counting(self, small_cohort, four_criteria):
        """Test that schema errors are raised before any predicate is evaluated."""
        calls = []

        def spy(rows):
            calls.append(len(rows))
            return rows["age"] > 0

        criteria = (
            [Criterion("Spy", Custom(("age",), spy))]
            + four_criteria
            + [Criterion("Stage known", FieldPresent("stage"))]
        )

        with pytest.raises(SchemaError, match="stage"):
            compute_attrition(small_cohort, criteria)
        assert calls == []

    def test_input_not_modified(self, small_cohort, four_criteria):
        """Test that the input DataFrame is left unchanged."""
        before = small_cohort.copy()

        result = compute_attrition(small_cohort, four_criteria)
        result.cohort["age"] = 0

        pd.testing.assert_frame_equal(small_cohort, before)

    def test_distinct_subject_counting(self, small_cohort, four_criteria, caplog):
        """Test counting distinct ids when records repeat a subject."""
        df = pd.concat([small_cohort, small_cohort.iloc[[0, 6]]], ignore_index=True)

        with caplog.at_level("WARNING"):
            result = compute_attrition(df, four_criteria, id_col="subject_id")

        assert result.initial_n == 10
        assert result.remaining == [8, 6, 5, 3]
        assert len(result.cohort) == 5
        assert "share a subject id" in caplog.text

    def test_unknown_id_column(self, small_cohort, four_criteria):
        """Test that a missing id column is a schema error."""
        with pytest.raises(SchemaError):
            compute_attrition(small_cohort, four_criteria, id_col="patient_id")


class TestApplyCriteria:
    """Tests for apply_criteria function."""

    def test_conjunction(self, small_cohort, four_criteria):
        """Test the one-shot filter keeps subjects passing every criterion."""
        filtered = apply_criteria(small_cohort, four_criteria)

        assert filtered["subject_id"].tolist() == [1, 7, 10]

    def test_no_criteria_returns_copy(self, small_cohort):
        """Test an empty criteria list returns the whole dataset."""
        filtered = apply_criteria(small_cohort, [])

        assert filtered is not small_cohort
        assert len(filtered) == len(small_cohort)


class TestAttritionResult:
    """Tests for AttritionResult accessors."""

    def test_final_n_without_rows(self):
        """Test final_n falls back to initial_n."""
        assert AttritionResult(initial_n=42).final_n == 42

    def test_properties_align(self, small_cohort, four_criteria):
        """Test that all per-step lists have one entry per criterion."""
        result = compute_attrition(small_cohort, four_criteria)

        lengths = {len(result.remaining), len(result.excluded),
                   len(result.descriptions), len(result.complements)}
        assert lengths == {len(four_criteria)}
