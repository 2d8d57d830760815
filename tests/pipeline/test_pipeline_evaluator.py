import numpy as np
import pytest
from unittest.mock import patch

from modules.pipeline import ModelDescriptor, PipelineCandidate, PipelineEvaluator, StageDescriptor
from modules.preprocessing import PCAStage
from utils.exceptions import ConfigurationError, InsufficientSubjectsError


@pytest.fixture
def config():
    return {
        'folds': {'k': 5, 'stratify': True},
        'analytics': {'measure': 'F1-Score'},
        'optimizer': {'inner_folds': 2, 'max_evaluations': 3, 'pipeline_max_evaluations': 6},
        'execution': {'n_jobs': 1},
        '_internal_seeds': {'folds': 1, 'model': 2, 'stages': 3},
    }


@pytest.fixture
def balanced_package(package_factory):
    return package_factory(n_subjects=100, positive_ratio=0.5)


def _candidate(stages, model="RandomForest", params=None, optimize=False):
    return PipelineCandidate(
        [StageDescriptor(name, p) for name, p in stages],
        ModelDescriptor(model, params or {}, optimize),
    )


class TestFitness:
    def test_end_to_end_pca_undersampling_forest(self, config, balanced_package, mock_logger):
        """Full-rank input: every fold runs both stages and the score is a valid F1."""
        candidate = _candidate([("PCA", {"n_components": 2}), ("Undersampling", {})],
                               params={"n_trees": 10})
        fitness = PipelineEvaluator(config, mock_logger).fitness(candidate, balanced_package)

        assert 0.0 <= fitness <= 1.0
        assert candidate.fitness == fitness
        assert len(candidate.fold_results) == 5
        assert all(not r.skipped_stages and r.error is None for r in candidate.fold_results)
        assert fitness == pytest.approx(np.mean([r.score for r in candidate.fold_results]))
        mock_logger.warning.assert_not_called()

    def test_deterministic_for_fixed_seeds(self, config, package, mock_logger):
        first = _candidate([("Oversampling", {})], params={"n_trees": 5})
        second = _candidate([("Oversampling", {})], params={"n_trees": 5})
        evaluator = PipelineEvaluator(config, mock_logger)
        assert evaluator.fitness(first, package) == evaluator.fitness(second, package)

    def test_stages_fit_on_training_partition_only(self, config, package, mock_logger):
        original = PCAStage._fit
        with patch.object(PCAStage, "_fit", autospec=True, side_effect=original) as spy:
            PipelineEvaluator(config, mock_logger).fitness(
                _candidate([("PCA", {"n_components": 2})], "DecisionTree"), package)

        assert spy.call_count == 5
        assert all(call.args[1].row_count() == 80 for call in spy.call_args_list)

    def test_degenerate_stage_is_skipped_per_fold(self, config, package, mock_logger):
        candidate = _candidate([("PCA", {"n_components": 10})], "DecisionTree")
        fitness = PipelineEvaluator(config, mock_logger).fitness(candidate, package)

        assert 0.0 <= fitness <= 1.0
        assert all(r.skipped_stages == ["PCA"] for r in candidate.fold_results)
        assert all(r.error is None for r in candidate.fold_results)
        assert mock_logger.warning.call_count == 5

    def test_model_failure_scores_worst(self, config, package, mock_logger):
        candidate = _candidate([], "DecisionTree", params={"min_samples_leaf": -1})
        fitness = PipelineEvaluator(config, mock_logger).fitness(candidate, package)

        assert fitness == 0.0
        assert all(r.error for r in candidate.fold_results)
        assert all(r.confusion_matrix is None for r in candidate.fold_results)

    def test_unknown_model_is_fatal(self, config, package, mock_logger):
        with pytest.raises(ConfigurationError, match="Unknown model name"):
            PipelineEvaluator(config, mock_logger).fitness(_candidate([], "SVM"), package)

    def test_too_few_subjects_is_fatal(self, config, package_factory, mock_logger):
        tiny = package_factory(n_subjects=3, rows_per_subject=4)
        with pytest.raises(InsufficientSubjectsError):
            PipelineEvaluator(config, mock_logger).fitness(_candidate([], "DecisionTree"), tiny)

    def test_variance_penalty(self, config, package, mock_logger):
        config['analytics']['variance_penalty'] = 1.0
        candidate = _candidate([], "DecisionTree")
        fitness = PipelineEvaluator(config, mock_logger).fitness(candidate, package)
        scores = [r.score for r in candidate.fold_results]
        assert fitness == pytest.approx(np.mean(scores) - np.std(scores))

    def test_candidate_time_budget(self, config, package, mock_logger):
        config['search'] = {'max_seconds_per_candidate': 1e-9}
        candidate = _candidate([], "DecisionTree")
        assert PipelineEvaluator(config, mock_logger).fitness(candidate, package) == 0.0
        assert all(r.error == "time budget exceeded" for r in candidate.fold_results)

    def test_optimized_model(self, config, package, mock_logger):
        candidate = _candidate([], "DecisionTree", optimize=True)
        fitness = PipelineEvaluator(config, mock_logger).fitness(candidate, package)
        assert 0.0 <= fitness <= 1.0
        assert all("max_depth" in r.model_params for r in candidate.fold_results)


class TestOptimizeParameters:
    def test_returns_best_variant(self, config, package, mock_logger):
        candidate = _candidate([("Undersampling", {})], "DecisionTree")
        evaluator = PipelineEvaluator(config, mock_logger)
        best = evaluator.optimize_parameters(candidate, package)

        assert candidate.is_evaluated
        assert best.is_evaluated
        assert best.fitness >= candidate.fitness
        assert best.stage_names() == ["Undersampling"]

    def test_no_free_parameters(self, config, package, mock_logger):
        candidate = _candidate([("PCA", {"n_components": 2})], "DecisionTree")
        best = PipelineEvaluator(config, mock_logger).optimize_parameters(candidate, package)
        assert best is candidate
        assert candidate.is_evaluated

    @pytest.mark.parametrize("pre_evaluated", [True, False])
    def test_tuning_respects_fitness_budget(self, config, package, mock_logger, pre_evaluated):
        config['optimizer']['pipeline_max_evaluations'] = 2
        candidate = _candidate([("Oversampling", {})], "DecisionTree")
        evaluator = PipelineEvaluator(config, mock_logger)
        if pre_evaluated:
            evaluator.fitness(candidate, package)

        with patch.object(PipelineEvaluator, "fitness", autospec=True,
                          side_effect=PipelineEvaluator.fitness) as spy:
            best = evaluator.optimize_parameters(candidate, package)

        assert spy.call_count <= 2
        assert best.is_evaluated
        assert best.fitness >= candidate.fitness
