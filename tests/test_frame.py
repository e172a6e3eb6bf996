import numpy as np
import pytest

from randomcut.exceptions import InvalidArgumentError
from randomcut.frame import ColumnMeta, ColumnType, PredictionFrame, as_points


class TableLike:
    """ Anything exposing to_numpy(), like a dataframe """

    def __init__(self, values):
        self.values = values

    def to_numpy(self):
        return np.array(self.values)


def test_as_points_shapes():
    assert as_points([1, 2, 3]).shape == (3, 1)
    assert as_points([[1, 2], [3, 4]]).shape == (2, 2)
    assert as_points(TableLike([[1, 2, 3]])).shape == (1, 3)
    assert as_points([]).shape == (0, 1)
    assert as_points([[1, 2]]).dtype == np.float64


@pytest.mark.parametrize(
    "rows",
    [
        None,
        [[1, 2], [3]],
        [["a", "b"]],
        np.zeros((2, 2, 2)),
        np.zeros((3, 0)),
        [[1.0, np.nan]],
        [[np.inf, 0.0]],
        [-np.inf],
    ],
)
def test_as_points_rejects_bad_rows(rows):
    with pytest.raises(InvalidArgumentError):
        as_points(rows)


def test_prediction_frame_converts_to_python_scalars():
    columns = (ColumnMeta("score", ColumnType.DOUBLE), ColumnMeta("anomalous", ColumnType.BOOLEAN))
    frame = PredictionFrame.from_columns(columns, np.array([0.5, 0.0]), np.array([True, False]))

    assert len(frame) == 2
    assert frame[0] == (0.5, True)
    assert type(frame[0][1]) is bool
    assert list(frame) == [(0.5, True), (0.0, False)]
    assert frame.column_names() == ["score", "anomalous"]
    np.testing.assert_array_equal(frame.column("score"), [0.5, 0.0])
    assert repr(frame) == "PredictionFrame(columns=['score', 'anomalous'], rows=2)"


def test_integer_column():
    frame = PredictionFrame.from_columns((ColumnMeta("ClusterID", ColumnType.INTEGER),), np.array([2, 0, 1]))
    assert frame.rows == [(2,), (0,), (1,)]
    assert all(type(label) is int for (label,) in frame)


def test_missing_column_raises():
    frame = PredictionFrame.from_columns((ColumnMeta("ClusterID", ColumnType.INTEGER),), [0])
    with pytest.raises(KeyError):
        frame.column("score")


def test_empty_frame():
    frame = PredictionFrame.from_columns((ColumnMeta("ClusterID", ColumnType.INTEGER),), np.zeros(0))
    assert len(frame) == 0
    assert frame.column_names() == ["ClusterID"]


def test_non_finite_message():
    with pytest.raises(InvalidArgumentError, match="input rows must be finite numbers"):
        as_points([[0.0, 1.0], [np.nan, 2.0]])
