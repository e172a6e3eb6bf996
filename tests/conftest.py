# tests/conftest.py
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

DATA_SIZE = 500


def make_rcf_values(predict: bool, seed: int) -> np.ndarray:
    """ Integers in [1, 10); in the prediction batch every 100th value is drawn from [100, 1000) """
    rng = np.random.default_rng(seed)
    values = rng.integers(1, 10, size=DATA_SIZE)
    if predict:
        outliers = np.arange(0, DATA_SIZE, 100)
        values[outliers] = rng.integers(100, 1000, size=outliers.size)
    return values.reshape(-1, 1).astype(float)


@pytest.fixture(scope="session")
def rcf_train_rows():
    return make_rcf_values(predict=False, seed=11)


@pytest.fixture(scope="session")
def rcf_predict_rows():
    return make_rcf_values(predict=True, seed=12)


@pytest.fixture(scope="session")
def blobs():
    """ Two well separated 2-D gaussian blobs, 50 points each """
    rng = np.random.default_rng(123)
    first = rng.normal(loc=(0.0, 0.0), scale=0.5, size=(50, 2))
    second = rng.normal(loc=(10.0, 10.0), scale=0.5, size=(50, 2))
    return np.vstack([first, second])


@pytest.fixture(scope="session")
def summarize_train_rows():
    """ 100 rows shaped like the tabular test frames: two numeric columns """
    rng = np.random.default_rng(7)
    return rng.uniform(0.0, 100.0, size=(100, 2))


@pytest.fixture(scope="session")
def summarize_predict_rows():
    rng = np.random.default_rng(8)
    return rng.uniform(0.0, 100.0, size=(10, 2))


@pytest.fixture
def no_show(monkeypatch):
    import matplotlib.pyplot as plt

    monkeypatch.setattr(plt, "show", lambda: None)
    yield
    plt.close("all")
