import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from joblib import Parallel, delayed

from modules.analytics import ConfusionMatrixAnalytics
from modules.data_package import DataPackage
from modules.fold_generator import Fold, PatientFoldGenerator
from modules.models import AbstractModel, ModelFactory
from modules.optimizers import NelderMeadOptimizer
from modules.pipeline.parameter_space import PipelineParameterSpace
from modules.pipeline.pipeline_candidate import FoldResult, ModelDescriptor, PipelineCandidate
from modules.preprocessing import StageFactory
from utils import constants
from utils.exceptions import (
    ConfigurationError,
    DegenerateMatrixError,
    EmptyPipelineError,
    UnknownFeatureError,
)

# Errors that invalidate the candidate or run rather than a single fold
FATAL_ERRORS = (UnknownFeatureError, ConfigurationError, EmptyPipelineError)


class PipelineEvaluator:
    """
    Cross-validated fitness of pipeline candidates.

    Per fold:
    1. Slice the training and validation partitions (independent copies).
    2. Run each stage on the training partition and replay the fitted
       stage on the validation partition. A DegenerateMatrixError skips
       that stage for this fold only.
    3. Train the model (optionally through its optimizer) and score its
       validation predictions with the configured measure.

    Folds run as parallel joblib tasks; fold scores are reduced afterwards.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        self.config = config
        self.logger = logger

        folds_cfg = config.get('folds', {})
        seeds = config.get('_internal_seeds', {})
        analytics_cfg = config.get('analytics', {})

        self.fold_generator = PatientFoldGenerator(
            folds_cfg.get('k', constants.DEFAULT_FOLDS),
            seed=seeds.get('folds', folds_cfg.get('seed')),
            stratify=folds_cfg.get('stratify', False),
            logger=logger,
        )
        self.analytics = ConfusionMatrixAnalytics(
            analytics_cfg.get('measure', constants.DEFAULT_MEASURE),
            analytics_cfg.get('positive_label', 1),
        )
        self.variance_penalty = analytics_cfg.get('variance_penalty', 0.0)
        self.optimizer_settings = config.get('optimizer', {})
        self.n_jobs = config.get('execution', {}).get('n_jobs', -1)
        self.max_seconds_per_candidate = config.get('search', {}).get('max_seconds_per_candidate')
        self.model_seed = seeds.get('model')
        self.stage_seed = seeds.get('stages')

    # ------------------------------------------------------------------
    # Fitness
    # ------------------------------------------------------------------

    def fitness(self, candidate: PipelineCandidate, package: DataPackage) -> float:
        """Evaluate `candidate` on `package`, assign and return its fitness."""
        folds = self.fold_generator.generate(package)
        deadline = None
        if self.max_seconds_per_candidate:
            deadline = time.monotonic() + self.max_seconds_per_candidate

        fold_results = Parallel(n_jobs=self.n_jobs, prefer="threads")(
            delayed(self._run_single_fold)(candidate, package, fold, deadline)
            for fold in folds
        )
        fold_results = sorted(fold_results, key=lambda r: r.fold_index)

        fitness = self.analytics.aggregate([r.score for r in fold_results], self.variance_penalty)
        candidate.assign_fitness(fitness, fold_results)

        failed = sum(1 for r in fold_results if r.error)
        self.logger.info(
            f"{candidate!r}: {self.analytics.measure.name}={fitness:.4f}"
            + (f" ({failed}/{len(fold_results)} folds failed)" if failed else "")
        )
        return fitness

    def _run_single_fold(self, candidate: PipelineCandidate, package: DataPackage, fold: Fold,
                         deadline: Optional[float]) -> FoldResult:
        """Helper for parallel fold execution."""
        if deadline is not None and time.monotonic() > deadline:
            self.logger.warning(f"Fold {fold.fold_index} of {candidate!r} skipped: candidate time budget used up")
            return FoldResult(fold.fold_index, self.analytics.worst_score(), error="time budget exceeded")

        train = package.subset_rows(fold.train_indices)
        validation = package.subset_rows(fold.validation_indices)
        skipped: List[str] = []
        try:
            train, validation = self._apply_stages(candidate, train, validation, fold.fold_index, skipped)
            model, model_params = self._train_model(candidate.model, train)
            predictions = model.predict_package(validation)
            matrix = self.analytics.confusion_matrix(validation.labels(), predictions)
            return FoldResult(fold.fold_index, self.analytics.score(matrix), matrix, skipped, model_params)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            self.logger.warning(f"Fold {fold.fold_index} of {candidate!r} failed: {e}")
            return FoldResult(fold.fold_index, self.analytics.worst_score(), None, skipped, error=str(e))

    def _apply_stages(self, candidate: PipelineCandidate, train: DataPackage, validation: DataPackage,
                      fold_index: int, skipped: List[str]) -> Tuple[DataPackage, DataPackage]:
        for position, descriptor in enumerate(candidate.stages):
            params = dict(descriptor.params)
            if self.stage_seed is not None:
                params.setdefault('random_state', self.stage_seed + position)
            stage = StageFactory.create(descriptor.name, params, logger=self.logger)
            try:
                transformed = stage.run(train)
            except DegenerateMatrixError as e:
                self.logger.warning(f"Fold {fold_index}: skipping stage {descriptor.name}: {e}")
                skipped.append(descriptor.name)
                continue
            train = transformed
            validation = stage.transform(validation)
        return train, validation

    def _train_model(self, descriptor: ModelDescriptor, train: DataPackage) -> Tuple[AbstractModel, Dict[str, Any]]:
        params = dict(descriptor.params)
        if self.model_seed is not None:
            params.setdefault('random_state', self.model_seed)

        if not descriptor.optimize:
            model = ModelFactory.create(descriptor.name, params)
            return model.train(train), model.get_params()

        base_params = ModelFactory._filter_params(ModelFactory.MODELS[descriptor.name], params)
        optimizer = ModelFactory.optimizer_for(
            descriptor.name, train, self.analytics,
            base_params=base_params,
            settings=self.optimizer_settings,
            seed=self.model_seed,
            logger=self.logger,
        )
        model = optimizer.model()
        return model, model.get_params()

    # ------------------------------------------------------------------
    # Stage hyperparameter tuning
    # ------------------------------------------------------------------

    def optimize_parameters(self, candidate: PipelineCandidate, package: DataPackage) -> PipelineCandidate:
        """
        Tune the candidate's free stage hyperparameters with Nelder-Mead.
        Returns the best evaluated variant (possibly `candidate` itself).
        """
        space = PipelineParameterSpace(candidate, package)
        # Every fitness run, including the base candidate's own, counts against the budget
        budget = self.optimizer_settings.get('pipeline_max_evaluations', constants.DEFAULT_PIPELINE_MAX_EVALUATIONS)
        if not candidate.is_evaluated:
            self.fitness(candidate, package)
            budget -= 1
        if space.dimension == 0 or budget < 1:
            return candidate

        evaluated: Dict[str, PipelineCandidate] = {candidate.key(): candidate}

        def objective(vector) -> float:
            variant = space.decode(vector)
            key = variant.key()
            if key not in evaluated:
                self.fitness(variant, package)
                evaluated[key] = variant
            return self.analytics.loss(evaluated[key].fitness)

        search = NelderMeadOptimizer(
            objective,
            initial=space.initial_vector(),
            scale=0.25,
            tolerance=self.optimizer_settings.get('tolerance', constants.DEFAULT_OPTIMIZER_TOLERANCE),
            max_evaluations=budget,
            logger=self.logger,
        )
        search.result()

        best = candidate
        for variant in evaluated.values():
            if self.analytics.is_better(variant.fitness, best.fitness):
                best = variant
        self.logger.info(f"Stage tuning evaluated {len(evaluated)} variants; best {best!r}")
        return best
