import json
import logging
import pytest

import main
from utils import constants


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def config_file(tmp_path, cohort_frame):
    data_path = tmp_path / "cohort.csv"
    cohort_frame.to_csv(data_path, index=False)
    config = {
        'data': {'file_path': str(data_path), 'label_column': 'outcome', 'subject_column': 'patient_id'},
        'folds': {'k': 3},
        'search': {'seed': 1, 'max_evaluations': 2, 'max_pipeline_depth': 1, 'parallel_candidates': 1},
        'catalog': {'stages': ['Undersampling'], 'models': ['DecisionTree']},
        'execution': {'n_jobs': 1},
        'logging': {'log_dir': str(tmp_path / "logs"), 'log_to_console': False},
        'outputs': {'base_results_dir': str(tmp_path / "results")},
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config))
    return path


def test_dry_run_validates_without_searching(tmp_path, config_file):
    code = main.main(["--config", str(config_file), "--schema", "config/schema.json", "--dry-run"])

    assert code == 0
    assert (tmp_path / "results" / constants.CONFIG_DIR / "config_used.json").exists()
    assert not (tmp_path / "results" / constants.SEARCH_DIR).exists()


def test_full_run_writes_best_pipeline(tmp_path, config_file):
    code = main.main(["--config", str(config_file), "--schema", "config/schema.json", "--run-id", "cli"])

    assert code == 0
    best = json.loads((tmp_path / "results" / constants.BEST_PIPELINE_DIR / constants.BEST_PIPELINE_FILE).read_text())
    assert best['path'][-1] == "model:DecisionTree"


def test_invalid_config_returns_error_code(tmp_path, config_file):
    config = json.loads(config_file.read_text())
    config['folds']['k'] = 1
    config_file.write_text(json.dumps(config))

    assert main.main(["--config", str(config_file), "--schema", "config/schema.json"]) == 1


def test_missing_label_column_returns_error_code(tmp_path, config_file):
    config = json.loads(config_file.read_text())
    del config['data']['label_column']
    config_file.write_text(json.dumps(config))

    assert main.main(["--config", str(config_file), "--schema", "config/schema.json", "--dry-run"]) == 1
