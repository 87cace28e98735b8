"""
Unit tests for the factor-model trainer and the default torch solver
"""

import dataclasses

import numpy as np
import pandas as pd
import pytest

from cfrec.engine.solver import SolverParams, TorchFactorizationSolver
from cfrec.engine.trainer import FactorModelTrainer
from cfrec.models.factor_model import FactorModel
from cfrec.utils.config import FeedbackMode, TrainerConfig
from cfrec.utils.errors import ConfigError, TrainingError


@pytest.fixture
def training() -> pd.DataFrame:
    return pd.DataFrame({
        "user": [1, 1, 2, 3],
        "item": [1, 2, 1, 3],
        "count": [7, 10, 8, 20],
        "explicit_rating": [0, 1, 0, 1],
        "implicit_rating": np.log([7, 10, 8, 20]),
    })


class FailingSolver:
    def __init__(self, error: Exception):
        self.error = error

    def fit(self, ratings, params):
        raise self.error


class TestFactorModelTrainer:
    """Test the adapter contract around the solver"""

    def test_explicit_passes_bucket_ratings(self, training, stub_solver):
        model = FactorModelTrainer(stub_solver).train(training, FeedbackMode.EXPLICIT, TrainerConfig(rank=3))
        table, params = stub_solver.calls[0]

        assert list(table.columns) == ["user", "item", "rating"]
        assert table["rating"].tolist() == [0, 1, 0, 1]
        assert params.implicit_prefs is False
        assert params.alpha == 0.0
        assert model.mode is FeedbackMode.EXPLICIT
        assert model.rank == 3

    def test_implicit_passes_log_ratings_and_alpha(self, training, stub_solver):
        config = TrainerConfig(rank=2, alpha=15.0, nonnegative=True, max_iterations=4, reg_param=0.5)
        FactorModelTrainer(stub_solver).train(training, "implicit", config)
        table, params = stub_solver.calls[0]

        assert table["rating"].tolist() == pytest.approx(np.log([7, 10, 8, 20]).tolist())
        assert params == SolverParams(
            rank=2, max_iterations=4, reg_param=0.5, nonnegative=True, implicit_prefs=True, alpha=15.0, seed=42
        )

    def test_factors_cover_training_indices(self, training, stub_solver):
        model = FactorModelTrainer(stub_solver).train(training, FeedbackMode.EXPLICIT, TrainerConfig(rank=2))
        assert model.user_ids.tolist() == [1, 2, 3]
        assert model.item_ids.tolist() == [1, 2, 3]

    def test_empty_training(self, stub_solver):
        with pytest.raises(TrainingError, match="empty"):
            FactorModelTrainer(stub_solver).train(
                pd.DataFrame(columns=["user", "item", "explicit_rating"]), FeedbackMode.EXPLICIT, TrainerConfig()
            )

    def test_implicit_requires_alpha(self, training, stub_solver):
        with pytest.raises(ConfigError, match="alpha"):
            FactorModelTrainer(stub_solver).train(training, FeedbackMode.IMPLICIT, TrainerConfig(alpha=None))

    def test_solver_failure_wrapped(self, training):
        trainer = FactorModelTrainer(FailingSolver(RuntimeError("did not converge")))
        with pytest.raises(TrainingError, match="did not converge"):
            trainer.train(training, FeedbackMode.EXPLICIT, TrainerConfig())

    def test_solver_training_error_passes_through(self, training):
        error = TrainingError("diverged")
        trainer = FactorModelTrainer(FailingSolver(error))
        with pytest.raises(TrainingError) as excinfo:
            trainer.train(training, FeedbackMode.EXPLICIT, TrainerConfig())
        assert excinfo.value is error

    def test_missing_factors(self, training, make_solver):
        class DroppingSolver:
            def fit(self, ratings, params):
                users, items = make_solver().fit(ratings, params)
                return users.iloc[:-1], items

        with pytest.raises(TrainingError, match="no factors for 1 users"):
            FactorModelTrainer(DroppingSolver()).train(training, FeedbackMode.EXPLICIT, TrainerConfig(rank=2))

    def test_wrong_rank(self, training, make_solver):
        solver = make_solver(
            user_factors={u: np.ones(4) for u in (1, 2, 3)},
            item_factors={i: np.ones(4) for i in (1, 2, 3)},
        )
        with pytest.raises(TrainingError, match="rank 4"):
            FactorModelTrainer(solver).train(training, FeedbackMode.EXPLICIT, TrainerConfig(rank=2))

    def test_non_finite_factors(self, training, make_solver):
        solver = make_solver(user_factors={1: np.array([np.nan, 1.0])})
        with pytest.raises(TrainingError, match="non-finite"):
            FactorModelTrainer(solver).train(training, FeedbackMode.EXPLICIT, TrainerConfig(rank=2))


class TestFactorModel:
    """Test the immutable factor value"""

    def test_sorted_and_readonly(self):
        model = FactorModel(
            mode=FeedbackMode.EXPLICIT,
            user_ids=np.array([3, 1]),
            user_factors=np.array([[3.0], [1.0]]),
            item_ids=np.array([2]),
            item_factors=np.array([[2.0]]),
        )
        assert model.user_ids.tolist() == [1, 3]
        assert model.user_vector(3).tolist() == [3.0]
        assert not model.user_factors.flags.writeable
        with pytest.raises(ValueError):
            model.user_factors[0, 0] = 5.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            model.mode = FeedbackMode.IMPLICIT

    def test_unknown_user(self):
        model = FactorModel(FeedbackMode.EXPLICIT, np.array([1]), np.ones((1, 2)), np.array([1]), np.ones((1, 2)))
        with pytest.raises(KeyError):
            model.user_vector(2)

    def test_frames_round_trip(self):
        model = FactorModel(FeedbackMode.IMPLICIT, np.array([1, 2]), np.eye(2), np.array([5]), np.ones((1, 2)))
        users, items = model.to_frames()
        again = FactorModel.from_frames(FeedbackMode.IMPLICIT, users, items)
        np.testing.assert_array_equal(again.user_factors, model.user_factors)
        np.testing.assert_array_equal(again.item_ids, model.item_ids)


class TestTorchFactorizationSolver:
    """Smoke tests for the default solver on tiny data"""

    @pytest.fixture
    def ratings(self) -> pd.DataFrame:
        users, items = np.meshgrid([1, 2, 3], [10, 20, 30], indexing="ij")
        return pd.DataFrame({
            "user": users.ravel(),
            "item": items.ravel(),
            "rating": [2.0, 1.0, 0.0, 1.0, 2.0, 1.0, 0.0, 1.0, 2.0],
        })

    def test_factor_tables_shape(self, ratings):
        solver = TorchFactorizationSolver(device="cpu")
        users, items = solver.fit(ratings, SolverParams(rank=3, max_iterations=5, reg_param=0.1))
        assert users["id"].tolist() == [1, 2, 3]
        assert items["id"].tolist() == [10, 20, 30]
        assert all(len(f) == 3 for f in users["features"])

    def test_explicit_fits_ratings(self, ratings):
        solver = TorchFactorizationSolver(learning_rate=0.05, batch_size=16, device="cpu")
        users, items = solver.fit(ratings, SolverParams(rank=4, max_iterations=600, reg_param=0.0, seed=1))
        model = FactorModel.from_frames(FeedbackMode.EXPLICIT, users, items)

        predicted = [float(model.user_vector(u) @ model.item_vector(i)) for u, i in ratings[["user", "item"]].values]
        assert np.abs(np.array(predicted) - ratings["rating"].to_numpy()).mean() < 0.25

    def test_nonnegative_factors(self, ratings):
        solver = TorchFactorizationSolver(device="cpu")
        params = SolverParams(rank=3, max_iterations=20, reg_param=0.01, nonnegative=True, implicit_prefs=True, alpha=2.0)
        users, items = solver.fit(ratings, params)
        assert (np.vstack(users["features"]) >= 0).all()
        assert (np.vstack(items["features"]) >= 0).all()

    def test_same_seed_same_factors(self, ratings):
        params = SolverParams(rank=2, max_iterations=10, reg_param=0.1, implicit_prefs=True, alpha=1.0, seed=9)
        first, _ = TorchFactorizationSolver(device="cpu").fit(ratings, params)
        second, _ = TorchFactorizationSolver(device="cpu").fit(ratings, params)
        np.testing.assert_allclose(np.vstack(first["features"]), np.vstack(second["features"]))

    def test_empty_ratings(self):
        with pytest.raises(TrainingError, match="empty"):
            TorchFactorizationSolver(device="cpu").fit(
                pd.DataFrame(columns=["user", "item", "rating"]), SolverParams(rank=2, max_iterations=1, reg_param=0.1)
            )
