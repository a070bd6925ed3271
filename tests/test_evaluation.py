import pytest
import numpy as np
import pandas as pd

from commodity_forecast.errors import DomainError, LengthMismatchError
from commodity_forecast.data_science.evaluation import AccuracyRecord, score, rank, leaderboard


class TestScore:

    def test_concrete_scenario(self):
        record = score([105, 100, 95], [100, 110, 90], model_name='m')
        assert record.model_name == 'm'
        assert record.rmse == pytest.approx(np.sqrt(50.0))
        assert record.rmse == pytest.approx(7.0711, abs=1e-4)
        assert record.mae == pytest.approx(20.0 / 3)
        assert record.mape == pytest.approx(np.mean([5 / 100, 10 / 110, 5 / 90]) * 100)

    def test_perfect_forecast(self):
        record = score([1.0, 2.0], [1.0, 2.0])
        assert record.rmse == 0.0
        assert record.mae == 0.0
        assert record.mape == 0.0

    def test_length_mismatch(self):
        with pytest.raises(LengthMismatchError):
            score([1.0, 2.0], [1.0, 2.0, 3.0])

    def test_empty(self):
        with pytest.raises(LengthMismatchError):
            score([], [])

    def test_misaligned_dates(self):
        idx = pd.date_range('2022-01-01', periods=3, freq='MS')
        pred = pd.Series([1.0, 2.0, 3.0], index=idx)
        actual = pd.Series([1.0, 2.0, 3.0], index=idx + pd.offsets.MonthBegin(1))
        with pytest.raises(LengthMismatchError):
            score(pred, actual)

    @pytest.mark.parametrize("pred", [[1.0, np.inf], [1.0, np.nan]])
    def test_non_finite_prediction(self, pred):
        with pytest.raises(DomainError):
            score(pred, [1.0, 2.0])

    def test_to_dict(self):
        record = AccuracyRecord('m', 1.0, 2.0, 3.0)
        assert record.to_dict() == {'model_name': 'm', 'rmse': 1.0, 'mae': 2.0, 'mape': 3.0}


class TestRank:

    def test_minimum_rmse(self):
        records = [AccuracyRecord('a', 3.0, 1, 1), AccuracyRecord('b', 1.0, 9, 9), AccuracyRecord('c', 2.0, 0, 0)]
        assert rank(records) == 'b'

    def test_ties_go_to_first(self):
        records = [AccuracyRecord('a', 2.0, 1, 1), AccuracyRecord('b', 1.0, 1, 1), AccuracyRecord('c', 1.0, 0, 0)]
        assert rank(records) == 'b'

    def test_empty(self):
        with pytest.raises(ValueError):
            rank([])

    def test_non_finite_rmse_never_wins(self):
        records = [AccuracyRecord('nan', np.nan, 1, 1), AccuracyRecord('a', 2.0, 1, 1),
                   AccuracyRecord('b', 1.5, 1, 1)]
        assert rank(records) == 'b'
        assert rank(records) == leaderboard(records).iloc[0]['model_name']

    def test_all_non_finite(self):
        with pytest.raises(ValueError):
            rank([AccuracyRecord('nan', np.nan, 1, 1)])

    def test_leaderboard_order(self):
        records = [AccuracyRecord('a', 2.0, 1, 1), AccuracyRecord('b', 1.0, 1, 1), AccuracyRecord('c', 1.0, 0, 0)]
        board = leaderboard(records)
        assert list(board['model_name']) == ['b', 'c', 'a']
        assert list(board.index) == [1, 2, 3]

    def test_leaderboard_empty(self):
        assert leaderboard([]).empty
