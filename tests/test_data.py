"""Unit tests for survival_report.data module.

Tests data loading, lung recoding and the default cohort criteria.
"""
import pytest
import numpy as np
import pandas as pd

from survival_report.attrition import apply_criteria, compute_attrition
from survival_report.criteria import SchemaError
from survival_report.data import (
    DAYS_PER_MONTH,
    EVENT_COL,
    ID_COL,
    TIME_MONTHS_COL,
    default_criteria,
    load_data,
    recode_lung,
    validate_schema,
)


class TestLoadData:
    """Tests for load_data function."""

    def test_bundled_lung(self):
        """Test loading the bundled lung dataset."""
        df = load_data("lung")

        assert len(df) == 228
        assert {"time", "status", "sex", "ph.ecog", "wt.loss"} <= set(df.columns)

    def test_none_loads_lung(self):
        """Test that no path falls back to the bundled dataset."""
        assert len(load_data()) == 228

    def test_csv(self, raw_lung_like, tmp_path):
        """Test loading a CSV file."""
        path = tmp_path / "cohort.csv"
        raw_lung_like.to_csv(path, index=False)

        df = load_data(str(path))

        assert df.shape == raw_lung_like.shape

    def test_pickle(self, raw_lung_like, tmp_path):
        """Test loading a pickle file."""
        path = tmp_path / "cohort.pkl"
        raw_lung_like.to_pickle(path)

        df = load_data(str(path))

        pd.testing.assert_frame_equal(df, raw_lung_like)

    def test_missing_file(self, tmp_path):
        """Test FileNotFoundError for missing input."""
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "absent.csv"))

    def test_unsupported_extension(self, tmp_path):
        """Test ValueError for unsupported formats."""
        path = tmp_path / "cohort.xlsx"
        path.write_text("x")

        with pytest.raises(ValueError, match="Unsupported file format"):
            load_data(str(path))

    def test_parquet_not_supported(self, tmp_path):
        """Test parquet input is rejected before any reader is tried."""
        path = tmp_path / "cohort.parquet"
        path.write_bytes(b"PAR1")

        with pytest.raises(ValueError, match="Unsupported file format: .parquet"):
            load_data(str(path))


class TestRecodeLung:
    """Tests for recode_lung function."""

    def test_renames_columns(self, raw_lung_like):
        """Test dotted names become snake_case."""
        df = recode_lung(raw_lung_like)

        for col in ["institution", "ecog", "karno_physician", "karno_patient",
                    "meal_calories", "weight_loss"]:
            assert col in df.columns
        assert "ph.ecog" not in df.columns
        assert "status" not in df.columns

    def test_event_recoding(self, raw_lung_like):
        """Test status 2 -> event 1, status 1 -> event 0."""
        df = recode_lung(raw_lung_like)

        assert df[EVENT_COL].tolist() == [1, 1, 0, 1, 1, 0]

    def test_all_censored_r_coding(self, raw_lung_like):
        """Test a batch where every status is 1 stays fully censored."""
        raw = raw_lung_like.assign(status=1)

        df = recode_lung(raw)

        assert df[EVENT_COL].tolist() == [0] * 6

    def test_binary_coding(self, raw_lung_like):
        """Test 0/1 status passes through under the binary coding."""
        raw = raw_lung_like.assign(status=[1, 1, 0, 1, 1, 0])

        df = recode_lung(raw, status_coding="binary")

        assert df[EVENT_COL].tolist() == [1, 1, 0, 1, 1, 0]

    def test_status_outside_coding(self, raw_lung_like):
        """Test 0/1 status is rejected under the default R coding."""
        raw = raw_lung_like.assign(status=[1, 1, 0, 1, 1, 0])

        with pytest.raises(ValueError, match=r"Status values \[0\]"):
            recode_lung(raw)

    def test_unknown_coding(self, raw_lung_like):
        """Test an unrecognised coding name is rejected."""
        with pytest.raises(ValueError, match="Unknown status coding"):
            recode_lung(raw_lung_like, status_coding="sas")

    def test_sex_labels(self, raw_lung_like):
        """Test sex codes become labels."""
        df = recode_lung(raw_lung_like)

        assert df["sex"].tolist() == ["Male"] * 5 + ["Female"]

    def test_ids_and_months(self, raw_lung_like):
        """Test subject ids and time in months are added."""
        df = recode_lung(raw_lung_like)

        assert df[ID_COL].tolist() == [1, 2, 3, 4, 5, 6]
        assert df.loc[0, TIME_MONTHS_COL] == pytest.approx(306 / DAYS_PER_MONTH)

    def test_missing_covariates_kept(self, raw_lung_like):
        """Test missing covariates are left for criteria to handle."""
        df = recode_lung(raw_lung_like)

        assert len(df) == 6
        assert np.isnan(df.loc[5, "ecog"])
        assert np.isnan(df.loc[0, "weight_loss"])

    def test_drops_missing_time(self, raw_lung_like):
        """Test records without follow-up time are dropped."""
        raw = raw_lung_like.copy()
        raw.loc[2, "time"] = np.nan

        df = recode_lung(raw)

        assert len(df) == 5
        assert df.index.tolist() == list(range(5))

    def test_input_not_modified(self, raw_lung_like):
        """Test the raw frame is left unchanged."""
        before = raw_lung_like.copy()

        recode_lung(raw_lung_like)

        pd.testing.assert_frame_equal(raw_lung_like, before)

    def test_missing_required_column(self, raw_lung_like):
        """Test SchemaError when status is absent."""
        with pytest.raises(SchemaError, match="status"):
            recode_lung(raw_lung_like.drop(columns=["status"]))


class TestValidateSchema:
    """Tests for validate_schema function."""

    def test_passes(self, small_cohort):
        """Test no error when all columns exist."""
        validate_schema(small_cohort, ["time", "event"])

    def test_lists_missing(self, small_cohort):
        """Test the error names every missing column."""
        with pytest.raises(SchemaError, match="stage.*grade|grade.*stage"):
            validate_schema(small_cohort, ["time", "stage", "grade"])


class TestDefaultCriteria:
    """Tests for the lung report criteria."""

    def test_order_and_labels(self):
        """Test the four criteria in their reporting order."""
        criteria = default_criteria()

        assert [c.fields for c in criteria] == [
            ("ecog",), ("karno_physician",), ("karno_patient",), ("weight_loss",)
        ]
        assert all(c.complement for c in criteria)

    def test_on_raw_like_data(self, raw_lung_like):
        """Test attrition on the recoded lung-like sample."""
        df = recode_lung(raw_lung_like)

        result = compute_attrition(df, default_criteria(), id_col=ID_COL)

        assert result.initial_n == 6
        assert result.remaining == [5, 5, 5, 4]
        assert result.excluded == [1, 0, 0, 1]

    def test_on_bundled_lung(self):
        """Test the four criteria on the full lung dataset, step by step."""
        df = recode_lung(load_data("lung"))
        criteria = default_criteria()

        result = compute_attrition(df, criteria, id_col=ID_COL)

        assert result.initial_n == 228
        assert result.remaining == [227, 226, 223, 183]
        assert result.excluded == [1, 1, 3, 40]
        assert result.final_n == len(apply_criteria(df, criteria))
        cohort = result.cohort
        assert cohort["ecog"].notna().all()
        assert cohort["karno_physician"].notna().all()
        assert cohort["karno_patient"].notna().all()
        assert (cohort["weight_loss"] >= 0).all()
