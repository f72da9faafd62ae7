import logging

import numpy as np
import pytest

from bouncederiv.types import BounceParams, DerivativeResult, Trajectory
from bouncederiv.utils.logging import get_logger
from bouncederiv.utils.windows import window_indices


def test_bounce_params():
    p = BounceParams(3, count=10)
    assert p.window_length == 7
    assert BounceParams.coerce(p) is p
    assert BounceParams.coerce((2, 1, 2, 5)) == BounceParams(2, 1, 2, 5)
    assert BounceParams.coerce({"spill": 1, "count": 4}).count == 4
    with pytest.raises(ValueError):
        BounceParams(3, stride=0)
    with pytest.raises(ValueError):
        BounceParams(-1)
    with pytest.raises(ValueError):
        BounceParams.coerce((1, 2))


def test_trajectory():
    traj = Trajectory.from_positions([0.0, np.nan, 2.0], [1.0, 1.0, 1.0])
    assert len(traj) == 3
    np.testing.assert_array_equal(traj.valid, [True, False, True])
    with pytest.raises(ValueError):
        Trajectory([0.0, 1.0], [0.0], [True, True])


def test_derivative_result_magnitudes():
    r = DerivativeResult(
        vx=np.array([3.0]), vy=np.array([4.0]), ax=np.array([0.0]), ay=np.array([-2.0]), algorithm="bounce"
    )
    assert r.speed[0] == 5.0
    assert r.acceleration[0] == 2.0


def test_windows():
    assert window_indices(10, 2, 5) == [8, 9, 10, 11, 12]
    assert window_indices(10, 0, 3, stride=2) == [10, 12, 14]
    assert window_indices(10, -1, 2) == [11, 12]
    with pytest.raises(ValueError):
        window_indices(0, 0, 0)
    with pytest.raises(ValueError):
        window_indices(0, 0, 3, stride=0)


def test_get_logger():
    logger = get_logger("bouncederiv.test", level=logging.DEBUG)
    assert logger.level == logging.DEBUG
    handlers = len(logger.handlers)
    assert get_logger("bouncederiv.test") is logger
    assert len(logger.handlers) == handlers == 1
    assert logger.level == logging.INFO
