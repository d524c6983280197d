"""
Tests for the per-subject fetcher.
"""

import asyncio

import pytest

from feature_matrix.exceptions import ProtocolError, RemoteError
from feature_matrix.fetcher import SubjectRowFetcher
from feature_matrix.models import FeatureColumnSet

from tests.feature_matrix.fakes import FEATURE_COLUMNS, FakeVizClient, failing_for, matrix_body


class TestNormalization:
    """Raw matrix rows become FeatureRow records."""

    @pytest.mark.asyncio
    async def test_rows_projected(self):
        fetcher = SubjectRowFetcher(FakeVizClient())
        column_set = FeatureColumnSet()

        rows = await fetcher.fetch_subject_rows(3, ["ECG", "EDA"], 7, column_set)

        assert [(r.subject_id, r.emotion) for r in rows] == [(7, "Baseline"), (7, "Fear1")]
        assert rows[0].color == "#808080"
        assert set(rows[0].features) == set(FEATURE_COLUMNS)
        assert rows[0].features["ECG_dom_freq"] == 70.0
        assert not rows[0].has_projection

    @pytest.mark.asyncio
    async def test_identity_fields_excluded_from_columns(self):
        column_set = FeatureColumnSet()

        await SubjectRowFetcher(FakeVizClient()).fetch_subject_rows(3, ["ECG"], 1, column_set)

        assert list(column_set) == FEATURE_COLUMNS
        assert "Subject" not in column_set.columns

    @pytest.mark.asyncio
    async def test_non_numeric_values_dropped(self):
        def handler(subject_id):
            body = matrix_body(subject_id, emotions=("Baseline",))
            body["rows"][0]["ECG_energy"] = "n/a"
            body["rows"][0]["EDA_mean"] = None
            body["rows"][0]["EDA_std"] = True
            return body

        rows = await SubjectRowFetcher(FakeVizClient(handler)).fetch_subject_rows(
            3, ["ECG"], 1, FeatureColumnSet()
        )

        assert rows[0].features == {"ECG_dom_freq": 10.0}

    @pytest.mark.asyncio
    async def test_malformed_row_entries_skipped(self):
        def handler(subject_id):
            body = matrix_body(subject_id, emotions=("Baseline",))
            body["rows"].append("garbage")
            body["rows"].append({"Subject": subject_id})
            return body

        rows = await SubjectRowFetcher(FakeVizClient(handler)).fetch_subject_rows(
            3, ["ECG"], 1, FeatureColumnSet()
        )

        assert len(rows) == 1


class TestMissingPayload:
    """A missing row collection is empty, not fatal."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {},
        {"rows": None},
        {"rows": "nope"},
        [],
        None,
    ])
    async def test_returns_empty_list(self, body):
        fetcher = SubjectRowFetcher(FakeVizClient(lambda s: body))

        assert await fetcher.fetch_subject_rows(3, ["ECG"], 1, FeatureColumnSet()) == []

    @pytest.mark.asyncio
    async def test_unreadable_body_returns_empty_list(self):
        def handler(subject_id):
            raise ProtocolError("Response body is not valid JSON")

        fetcher = SubjectRowFetcher(FakeVizClient(handler))

        assert await fetcher.fetch_subject_rows(3, ["ECG"], 1, FeatureColumnSet()) == []

    @pytest.mark.asyncio
    async def test_remote_error_propagates(self):
        fetcher = SubjectRowFetcher(FakeVizClient(failing_for(1, status=404)))

        with pytest.raises(RemoteError) as exc_info:
            await fetcher.fetch_subject_rows(3, ["ECG"], 1, FeatureColumnSet())

        assert exc_info.value.status_code == 404


class TestColumnCapture:
    """The first successful response fixes the column set."""

    @pytest.mark.asyncio
    async def test_later_columns_do_not_replace_first(self):
        def handler(subject_id):
            if subject_id == 1:
                return matrix_body(1, columns=["ECG_mean", "ECG_std"])
            return matrix_body(subject_id, columns=["ECG_mean", "EDA_mean"])

        fetcher = SubjectRowFetcher(FakeVizClient(handler))
        column_set = FeatureColumnSet()

        await fetcher.fetch_subject_rows(3, ["ECG"], 1, column_set)
        rows = await fetcher.fetch_subject_rows(3, ["ECG"], 2, column_set)

        assert column_set.columns == ("ECG_mean", "ECG_std")
        # Row 2 keeps only captured columns present in its own payload
        assert set(rows[0].features) == {"ECG_mean"}

    @pytest.mark.asyncio
    async def test_empty_response_does_not_capture(self):
        def handler(subject_id):
            if subject_id == 1:
                return {"columns": ["Subject", "X_mean"]}
            return matrix_body(subject_id)

        fetcher = SubjectRowFetcher(FakeVizClient(handler))
        column_set = FeatureColumnSet()

        await fetcher.fetch_subject_rows(3, ["ECG"], 1, column_set)
        assert not column_set.is_captured

        await fetcher.fetch_subject_rows(3, ["ECG"], 2, column_set)
        assert column_set.columns == tuple(FEATURE_COLUMNS)

    @pytest.mark.asyncio
    async def test_concurrent_capture_single_winner(self):
        def handler(subject_id):
            return matrix_body(subject_id, columns=[f"ECG_m{subject_id}"])

        fetcher = SubjectRowFetcher(FakeVizClient(handler, delay=0.001))
        column_set = FeatureColumnSet()

        await asyncio.gather(*(
            fetcher.fetch_subject_rows(3, ["ECG"], s, column_set) for s in range(1, 6)
        ))

        assert len(column_set) == 1
        assert column_set.columns[0] in {f"ECG_m{s}" for s in range(1, 6)}

    def test_capture_returns_true_only_once(self):
        column_set = FeatureColumnSet()

        assert column_set.capture(["Subject", "A"]) is True
        assert column_set.capture(["B"]) is False
        assert column_set.columns == ("A",)
