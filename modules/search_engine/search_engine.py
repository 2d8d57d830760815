import datetime
import json
import logging
import pandas as pd
import numpy as np
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set
from joblib import Parallel, delayed

from modules.analytics import MEASURES, cv_fold_consistency
from modules.base.base_engine import BaseEngine
from modules.config_manager import ConfigurationManager
from modules.data_package import DataPackage
from modules.logging_config import LoggingConfigurator
from modules.pipeline import PipelineCandidate, PipelineEvaluator
from modules.pipeline_tree import PipelineTree
from modules.search_engine.progress import NumpyEncoder, file_lock
from modules.search_engine.stopping_criteria import SearchStoppingCriteria
from utils import constants
from utils.error_handling import handle_engine_errors
from utils.file_io import save_dataframe

# Sampling attempts per requested candidate before the space counts as exhausted
RESAMPLE_FACTOR = 50


class PipelineSearchEngine(BaseEngine):
    """
    Pipeline structure search.

    Repeatedly samples batches of paths from the pipeline tree, evaluates
    them (in parallel across candidates and, inside each candidate, across
    folds), and feeds the fitness back into the tree so later sampling can
    favour strong branches. Every evaluation is appended to a JSONL progress
    file; a rerun in the same output directory skips finished candidates.
    """

    def __init__(self, config: dict, logger: logging.Logger):
        super().__init__(config, logger)
        self.search_cfg = config.get('search', {})
        self.catalog = config.get('catalog', {})
        self.evaluator = PipelineEvaluator(config, logger)
        self.analytics = self.evaluator.analytics
        self.stopping = SearchStoppingCriteria(config, logger, minimize=self.analytics.minimize)
        self.batch_size = max(1, self.search_cfg.get('parallel_candidates', 1))
        self.n_jobs = config.get('execution', {}).get('n_jobs', -1)
        self.csv_copy = config.get('outputs', {}).get('csv_copy', False)
        self.tree = self._build_tree()

        self.progress_file = self.output_dir / constants.PROGRESS_FILE
        self.completed: Dict[str, Dict[str, Any]] = {}
        self.evaluated: List[PipelineCandidate] = []

    def _get_engine_directory_name(self) -> str:
        return constants.SEARCH_DIR

    def _build_tree(self) -> PipelineTree:
        return PipelineTree(
            stage_catalog=self.catalog.get('stages', constants.STAGE_NAMES),
            model_catalog=self.catalog.get('models', constants.MODEL_NAMES),
            max_depth=self.search_cfg.get('max_pipeline_depth', constants.DEFAULT_MAX_PIPELINE_DEPTH),
            max_algorithm_repeatability=self.search_cfg.get(
                'max_algorithm_repeatability', constants.DEFAULT_MAX_ALGORITHM_REPEATABILITY),
            stage_params=self.catalog.get('stage_params', {}),
            model_params=self.catalog.get('model_params', {}),
            optimize_models=self.catalog.get('optimize_models', False),
            temperature=self.search_cfg.get('temperature'),
            minimize=self.analytics.minimize,
            seed=self.config.get('_internal_seeds', {}).get('search', self.search_cfg.get('seed')),
            logger=self.logger,
        )

    @handle_engine_errors("Pipeline Search")
    def execute(self, package: DataPackage, run_id: str) -> Dict[str, Any]:
        """
        Run the search on `package`.

        Returns:
            dict: The best candidate's report (descriptor, fitness, folds)
            plus run statistics.
        """
        self.logger.info(
            f"Starting pipeline search on {package!r} "
            f"(measure={self.analytics.measure.name}, budget={self.stopping.max_evaluations})"
        )
        self._load_progress()
        self.stopping.start()

        evaluations = len(self.completed)
        best_history: List[float] = []
        best = self._best_of(self.evaluated)
        stop_reason = ""

        while True:
            stop, stop_reason = self.stopping.should_stop(evaluations, best_history)
            if stop:
                break

            wanted = min(self.batch_size, self.stopping.max_evaluations - evaluations)
            batch = self._sample_batch(wanted)
            if not batch:
                stop_reason = "Search space exhausted"
                break

            Parallel(n_jobs=self.n_jobs if len(batch) > 1 else 1, prefer="threads")(
                delayed(self.evaluator.fitness)(candidate, package) for candidate in batch
            )

            for candidate in batch:
                self.tree.record_fitness(candidate)
                self._save_progress(self._progress_entry(candidate, run_id))
                self.completed[candidate.key()] = {'fitness': candidate.fitness}
                self.evaluated.append(candidate)
                evaluations += 1

            best = self._best_of(self.evaluated)
            best_history.append(best.fitness)
            self.logger.info(f"Evaluated {evaluations} candidates; best so far {best!r}")

        self.logger.info(f"Search stopped: {stop_reason}")

        if best is not None and self.search_cfg.get('tune_best', False) and best.fold_results:
            tuned = self.evaluator.optimize_parameters(best, package)
            if tuned is not best:
                self._save_progress(self._progress_entry(tuned, run_id))
                self.evaluated.append(tuned)
            best = tuned

        return self._finalize_results(best, run_id, evaluations, stop_reason)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _sample_batch(self, size: int) -> List[PipelineCandidate]:
        seen: Set[str] = set(self.completed)
        batch: List[PipelineCandidate] = []
        attempts = 0
        while len(batch) < size and attempts < size * RESAMPLE_FACTOR:
            attempts += 1
            candidate = self.tree.random_path()
            key = candidate.key()
            if key in seen:
                continue
            seen.add(key)
            batch.append(candidate)
        return batch

    def _best_of(self, candidates: Iterable[PipelineCandidate]) -> Optional[PipelineCandidate]:
        best = None
        for candidate in candidates:
            if candidate.fitness is None:
                continue
            if best is None or self.analytics.is_better(candidate.fitness, best.fitness):
                best = candidate
        return best

    # ------------------------------------------------------------------
    # Progress (resume)
    # ------------------------------------------------------------------

    def _progress_entry(self, candidate: PipelineCandidate, run_id: str) -> Dict[str, Any]:
        report = candidate.to_dict()
        return {
            'run_id': run_id,
            'timestamp': datetime.datetime.now().isoformat(),
            'key': report['key'],
            'path': report['path'],
            'stages': report['stages'],
            'model': report['model'],
            'measure': self.analytics.measure.name,
            'fitness': report['fitness'],
            'fold_scores': report['fold_scores'],
            'failed_folds': sum(1 for fold in report['folds'] if fold['error']),
            'skipped_stages': sorted({s for fold in report['folds'] for s in fold['skipped_stages']}),
        }

    def _load_progress(self):
        """Load finished candidates and replay their fitness into the tree."""
        if not self.progress_file.exists():
            return
        with open(self.progress_file, 'r') as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    self.logger.warning(f"Skipping malformed progress line in {self.progress_file}")
                    continue
                if entry.get('measure') != self.analytics.measure.name or entry.get('fitness') is None:
                    continue
                if not self.tree.is_valid_path(entry['path']):
                    continue

                candidate = self.tree.candidate_for(entry['path'])
                if candidate.key() != entry['key']:
                    # Tuned variants are not reachable by sampling; keep them out of resume
                    continue
                candidate.assign_fitness(entry['fitness'], [])
                self.tree.record_fitness(candidate)
                self.completed[entry['key']] = entry
                self.evaluated.append(candidate)
        self.logger.info(f"Resumed search: {len(self.completed)} candidates completed.")

    def _save_progress(self, entry: Dict[str, Any]):
        """Append result with locking."""
        with file_lock(self.progress_file):
            with open(self.progress_file, 'a') as f:
                f.write(json.dumps(entry, cls=NumpyEncoder) + "\n")

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _finalize_results(self, best: Optional[PipelineCandidate], run_id: str,
                          evaluations: int, stop_reason: str) -> Dict[str, Any]:
        if self.evaluated:
            rows = [{
                'key': c.key(),
                'pipeline': " -> ".join(c.stage_names() + [c.model.name]),
                'n_stages': len(c.stages),
                'model': c.model.name,
                'fitness': c.fitness,
                'fold_mean': float(np.mean([r.score for r in c.fold_results])) if c.fold_results else np.nan,
                'fold_std': float(np.std([r.score for r in c.fold_results])) if c.fold_results else np.nan,
            } for c in self.evaluated]
            table = pd.DataFrame(rows).sort_values('fitness', ascending=self.analytics.minimize)
            save_dataframe(table, self.output_dir / constants.ALL_CANDIDATES_FILE, csv_copy=self.csv_copy)

        if best is None:
            self.logger.warning("Pipeline search finished without any evaluated candidate.")
            return {'run_id': run_id, 'evaluations': evaluations, 'stop_reason': stop_reason, 'best': None}

        report = best.to_dict()
        best_dir = self.base_dir / constants.BEST_PIPELINE_DIR
        best_dir.mkdir(parents=True, exist_ok=True)
        with open(best_dir / constants.BEST_PIPELINE_FILE, 'w') as f:
            json.dump(report, f, indent=2, cls=NumpyEncoder)

        matrices = [r.confusion_matrix for r in best.fold_results if r.confusion_matrix is not None]
        if matrices:
            per_measure = {name: [m.all_values()[name] for m in matrices] for name in MEASURES}
            save_dataframe(cv_fold_consistency(per_measure), best_dir / "fold_consistency.parquet",
                           csv_copy=self.csv_copy)

        self.logger.info(f"Best pipeline: {best!r}")
        return {
            **report,
            'run_id': run_id,
            'measure': self.analytics.measure.name,
            'evaluations': evaluations,
            'stop_reason': stop_reason,
        }


def run_search(config_path: str, schema_path: str, frame: pd.DataFrame, label_column: str,
               subject_column: Optional[str] = None, categorical: Iterable[str] = (),
               run_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Load and validate the configuration, set up logging, ingest `frame`
    and run a pipeline search.
    """
    manager = ConfigurationManager(config_path, schema_path)
    config = manager.load_and_validate()
    LoggingConfigurator(config).setup()
    logger = logging.getLogger("pipeline_search")

    run_id = run_id or manager.generate_run_id()
    base_dir = Path(config.get('outputs', {}).get('base_results_dir', 'results'))
    manager.save_artifacts(str(base_dir))

    package = DataPackage.from_frame(frame, label_column, subject_column, categorical)
    return PipelineSearchEngine(config, logger).execute(package, run_id)
