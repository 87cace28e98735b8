import numpy as np
import pandas as pd

from cfrec.engine.solver import FactorizationSolver, SolverParams, TorchFactorizationSolver
from cfrec.models.factor_model import FactorModel
from cfrec.utils.config import FeedbackMode, TrainerConfig
from cfrec.utils.errors import ConfigError, PipelineError, TrainingError
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)


class FactorModelTrainer:
    """Thin adapter between rating records and a `FactorizationSolver`.

    Selects the rating column for the feedback mode, passes the mode-specific
    hyperparameters and checks that the returned factor tables cover every user
    and item present in training at the configured rank. Whatever
    non-determinism the solver has stays inside `train`.
    """

    def __init__(self, solver: FactorizationSolver | None = None):
        self.solver = solver or TorchFactorizationSolver()

    def train(self, training: pd.DataFrame, mode: FeedbackMode | str, config: TrainerConfig) -> FactorModel:
        mode = FeedbackMode.parse(mode)
        if training.empty:
            raise TrainingError("Training set is empty; nothing to factorize")
        if mode is FeedbackMode.IMPLICIT and config.alpha is None:
            raise ConfigError("Implicit feedback training requires alpha")

        table = training[["user", "item", mode.rating_column]].rename(columns={mode.rating_column: "rating"})
        params = SolverParams(
            rank=config.rank,
            max_iterations=config.max_iterations,
            reg_param=config.reg_param,
            nonnegative=config.nonnegative,
            implicit_prefs=mode is FeedbackMode.IMPLICIT,
            # alpha only reaches the solver in implicit mode
            alpha=config.alpha if mode is FeedbackMode.IMPLICIT else 0.0,
            seed=config.seed,
        )

        logger.info(
            f"Training {mode.value} model on {len(table):,} ratings | rank={params.rank} "
            f"iterations={params.max_iterations} reg={params.reg_param} alpha={params.alpha}"
        )
        try:
            user_frame, item_frame = self.solver.fit(table, params)
            model = FactorModel.from_frames(mode, user_frame, item_frame)
        except PipelineError:
            raise
        except Exception as err:
            raise TrainingError(f"Factorization solver failed: {err}") from err

        self._check_coverage(model, table, params.rank)
        return model

    @staticmethod
    def _check_coverage(model: FactorModel, table: pd.DataFrame, rank: int) -> None:
        if model.rank != rank:
            raise TrainingError(f"Solver returned rank {model.rank}, expected {rank}")

        missing_users = np.setdiff1d(table["user"].unique(), model.user_ids)
        missing_items = np.setdiff1d(table["item"].unique(), model.item_ids)
        if len(missing_users) or len(missing_items):
            raise TrainingError(
                f"Solver returned no factors for {len(missing_users)} users and {len(missing_items)} items"
            )
        if not (np.isfinite(model.user_factors).all() and np.isfinite(model.item_factors).all()):
            raise TrainingError("Solver returned non-finite factors")
