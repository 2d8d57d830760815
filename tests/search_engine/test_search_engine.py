import json
import logging
import pandas as pd
import pytest

from modules.search_engine import PipelineSearchEngine, run_search
from utils import constants


def make_config(tmp_path, **search):
    search_cfg = {
        'max_evaluations': 4,
        'parallel_candidates': 2,
        'max_pipeline_depth': 2,
        'temperature': 0.5,
    }
    search_cfg.update(search)
    return {
        'folds': {'k': 3, 'stratify': True},
        'analytics': {'measure': 'F1-Score'},
        'search': search_cfg,
        'catalog': {
            'stages': ['PCA', 'Undersampling'],
            'models': ['DecisionTree'],
            'stage_params': {'PCA': {'n_components': 2}},
        },
        'optimizer': {'pipeline_max_evaluations': 4},
        'execution': {'n_jobs': 1},
        'outputs': {'base_results_dir': str(tmp_path)},
        '_internal_seeds': {'search': 42, 'folds': 1042, 'model': 2042, 'stages': 3042},
    }


def read_progress(tmp_path):
    lines = (tmp_path / constants.SEARCH_DIR / constants.PROGRESS_FILE).read_text().splitlines()
    return [json.loads(line) for line in lines if line.strip()]


class TestPipelineSearchEngine:
    def test_execute_stops_at_evaluation_budget(self, tmp_path, package, mock_logger):
        result = PipelineSearchEngine(make_config(tmp_path), mock_logger).execute(package, "run_1")

        assert result['stop_reason'] == "Evaluation budget reached (4)"
        assert result['evaluations'] == 4
        assert result['run_id'] == "run_1"
        assert result['measure'] == "F1-Score"
        assert 0.0 <= result['fitness'] <= 1.0

        entries = read_progress(tmp_path)
        assert len(entries) == 4
        assert len({e['key'] for e in entries}) == 4
        assert all(e['run_id'] == "run_1" and e['measure'] == "F1-Score" for e in entries)
        assert all(e['path'][-1] == "model:DecisionTree" for e in entries)

    def test_execute_writes_summaries(self, tmp_path, package, mock_logger):
        result = PipelineSearchEngine(make_config(tmp_path), mock_logger).execute(package, "run_1")

        table = pd.read_parquet(tmp_path / constants.SEARCH_DIR / constants.ALL_CANDIDATES_FILE)
        assert len(table) == 4
        assert table['fitness'].is_monotonic_decreasing
        assert set(table.columns) >= {'key', 'pipeline', 'n_stages', 'model', 'fitness', 'fold_mean', 'fold_std'}

        best_file = tmp_path / constants.BEST_PIPELINE_DIR / constants.BEST_PIPELINE_FILE
        best = json.loads(best_file.read_text())
        assert best['key'] == result['key']
        assert best['fitness'] == pytest.approx(table['fitness'].iloc[0])
        assert len(best['folds']) == 3

        consistency = pd.read_parquet(tmp_path / constants.BEST_PIPELINE_DIR / "fold_consistency.parquet")
        assert not consistency.empty

    def test_search_space_exhausted(self, tmp_path, package, mock_logger):
        # Depth one over two stages and one model leaves three distinct pipelines
        config = make_config(tmp_path, max_evaluations=10, max_pipeline_depth=1)
        result = PipelineSearchEngine(config, mock_logger).execute(package, "run_1")

        assert result['stop_reason'] == "Search space exhausted"
        assert result['evaluations'] == 3
        keys = {e['key'] for e in read_progress(tmp_path)}
        assert len(keys) == 3

    def test_resume_skips_completed_candidates(self, tmp_path, package, mock_logger):
        PipelineSearchEngine(make_config(tmp_path, max_evaluations=2), mock_logger).execute(package, "run_1")
        first_keys = [e['key'] for e in read_progress(tmp_path)]

        engine = PipelineSearchEngine(make_config(tmp_path, max_evaluations=4), mock_logger)
        result = engine.execute(package, "run_1")

        entries = read_progress(tmp_path)
        assert result['evaluations'] == 4
        assert len(entries) == 4
        assert [e['key'] for e in entries[:2]] == first_keys
        assert len({e['key'] for e in entries}) == 4

    def test_resume_ignores_foreign_and_malformed_lines(self, tmp_path, package, mock_logger):
        config = make_config(tmp_path, max_evaluations=1)
        engine = PipelineSearchEngine(config, mock_logger)
        foreign = {'key': 'x', 'path': ['model:DecisionTree'], 'measure': 'Accuracy', 'fitness': 0.9}
        engine.progress_file.write_text("{not json\n" + json.dumps(foreign) + "\n")
        mock_logger.reset_mock()

        engine._load_progress()

        assert engine.completed == {}
        assert engine.evaluated == []
        mock_logger.warning.assert_called_once()

    def test_completed_budget_stops_immediately(self, tmp_path, package, mock_logger):
        PipelineSearchEngine(make_config(tmp_path, max_evaluations=2), mock_logger).execute(package, "run_1")

        result = PipelineSearchEngine(make_config(tmp_path, max_evaluations=2), mock_logger).execute(package, "run_2")

        assert result['stop_reason'] == "Evaluation budget reached (2)"
        assert len(read_progress(tmp_path)) == 2
        assert result['fitness'] is not None

    def test_tune_best_keeps_best_fitness(self, tmp_path, package, mock_logger):
        config = make_config(tmp_path, max_evaluations=3, max_pipeline_depth=1, tune_best=True)
        config['catalog']['stage_params'] = {}
        engine = PipelineSearchEngine(config, mock_logger)

        result = engine.execute(package, "run_1")

        sampled = [c.fitness for c in engine.evaluated[:3]]
        assert result['fitness'] >= max(sampled)

    def test_sample_batch_returns_unique_unseen_paths(self, tmp_path, mock_logger):
        engine = PipelineSearchEngine(make_config(tmp_path, max_pipeline_depth=1), mock_logger)
        engine.completed = {engine.tree.candidate_for(['model:DecisionTree']).key(): {}}

        batch = engine._sample_batch(5)

        assert len(batch) == 2
        assert {tuple(c.path) for c in batch} == {
            ('PCA', 'model:DecisionTree'), ('Undersampling', 'model:DecisionTree'),
        }


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def test_run_search_end_to_end(tmp_path, cohort_frame, restore_root_logger):
    config = make_config(tmp_path / "results", max_evaluations=2)
    del config['_internal_seeds']
    config['search']['seed'] = 7
    config['logging'] = {'log_dir': str(tmp_path / "logs"), 'log_to_console': False}
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(config))

    result = run_search(str(config_path), "config/schema.json", cohort_frame, "outcome",
                        subject_column="patient_id", run_id="fixed")

    assert result['run_id'] == "fixed"
    assert result['evaluations'] == 2
    assert (tmp_path / "results" / constants.CONFIG_DIR / "config_used.json").exists()
    assert (tmp_path / "logs" / constants.LOG_FILE).exists()
