from dataclasses import dataclass

import pandas as pd

from cfrec.data.features import encode_ratings
from cfrec.data.preprocess import InteractionPreprocessor
from cfrec.data.split import partition_records
from cfrec.engine.metrics import EvaluationResult, evaluate_hit_rate
from cfrec.engine.ranking import build_prediction_matrix, decode_recommendations, recommend_top_n
from cfrec.engine.solver import FactorizationSolver, TorchFactorizationSolver
from cfrec.engine.trainer import FactorModelTrainer
from cfrec.models.factor_model import FactorModel
from cfrec.utils.config import FeedbackMode, PipelineConfig
from cfrec.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class PreparedRecords:
    preprocessor: InteractionPreprocessor
    training: pd.DataFrame
    testing: pd.DataFrame


@dataclass(frozen=True)
class PipelineResult:
    mode: FeedbackMode
    model: FactorModel
    top_n: dict[int, list[int]]
    evaluation: EvaluationResult
    preprocessor: InteractionPreprocessor
    training: pd.DataFrame
    testing: pd.DataFrame

    def recommendations(self) -> pd.DataFrame:
        """Top-N lists in raw user / item identifiers."""
        return decode_recommendations(
            self.top_n, self.preprocessor.user_registry, self.preprocessor.item_registry
        )


def prepare_records(events: pd.DataFrame, config: PipelineConfig) -> PreparedRecords:
    """Aggregate → index → encode ratings → partition. Shared by both feedback modes."""
    prep = InteractionPreprocessor(events, min_count=config.min_interaction_count)
    interactions = prep.process()

    records = encode_ratings(interactions, config.num_rating_buckets)
    training, testing = partition_records(records, config.ratios, seed=config.random_seed)
    return PreparedRecords(prep, training, testing)


def _default_solver(config: PipelineConfig) -> FactorizationSolver:
    return TorchFactorizationSolver(learning_rate=config.learning_rate, batch_size=config.batch_size)


def run_mode(
    prepared: PreparedRecords,
    config: PipelineConfig,
    mode: FeedbackMode | str,
    *,
    solver: FactorizationSolver | None = None,
) -> PipelineResult:
    """Train → predict → top-N → evaluate for one feedback mode on already prepared records."""
    mode = FeedbackMode.parse(mode)
    trainer = FactorModelTrainer(solver or _default_solver(config))

    model = trainer.train(prepared.training, mode, config.trainer_config(mode))
    top_n = recommend_top_n(build_prediction_matrix(model), config.top_n, batch_size=config.ranking_batch_size)
    evaluation = evaluate_hit_rate(prepared.testing, top_n)

    logger.info(f"[{mode.value}] HitRate@{config.top_n}: {evaluation.accuracy:.2f}%")
    return PipelineResult(
        mode=mode,
        model=model,
        top_n=top_n,
        evaluation=evaluation,
        preprocessor=prepared.preprocessor,
        training=prepared.training,
        testing=prepared.testing,
    )


def run_pipeline(
    events: pd.DataFrame,
    config: PipelineConfig | None = None,
    mode: FeedbackMode | str = FeedbackMode.EXPLICIT,
    *,
    solver: FactorizationSolver | None = None,
) -> PipelineResult:
    """End‑to‑end run for one feedback mode: preprocess → encode → split → train → top-N → evaluate.

    Parameters
    ----------
    events : pd.DataFrame
        Raw event log with columns 'user_id' and 'item_id' (one row per event).
    config : PipelineConfig, optional
        Pipeline settings; defaults to `PipelineConfig()`.
    mode : FeedbackMode or str, optional
        'explicit' trains on quantile buckets, 'implicit' on log counts.
    solver : FactorizationSolver, optional
        Factorization backend; defaults to `TorchFactorizationSolver`.

    Returns
    -------
    PipelineResult
        Trained model, top-N lists, evaluation and the intermediate splits.

    Errors from any stage propagate unchanged.
    """
    config = config or PipelineConfig()
    prepared = prepare_records(events, config)
    return run_mode(prepared, config, mode, solver=solver)


def run_all_modes(
    events: pd.DataFrame,
    config: PipelineConfig | None = None,
    *,
    modes: tuple[FeedbackMode, ...] = (FeedbackMode.EXPLICIT, FeedbackMode.IMPLICIT),
    solver: FactorizationSolver | None = None,
) -> dict[FeedbackMode, PipelineResult]:
    """Prepare records once and run every requested feedback mode on the same partition."""
    config = config or PipelineConfig()
    prepared = prepare_records(events, config)
    return {
        FeedbackMode.parse(mode): run_mode(prepared, config, mode, solver=solver)
        for mode in modes
    }
