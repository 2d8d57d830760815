import json
import os
import hashlib
import sys
import logging
import jsonschema
import psutil
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from modules.analytics import MEASURES
from utils.exceptions import ConfigurationError
from utils import constants


class ConfigurationManager:
    """
    Manages search configuration loading, validation, and access.
    Acts as the single source of truth for one pipeline search run; the
    returned dictionary is treated as read-only once the search starts.
    """

    # Default Resource Limits (Safety Guardrails)
    DEFAULT_MAX_PIPELINE_EVALUATIONS = 10000
    DEFAULT_MAX_EXECUTION_TIME_SEC = 86400  # 24 hours

    def __init__(self, config_path: str = "config/config.json",
                 schema_path: str = "config/schema.json"):
        """
        Initialize the ConfigurationManager.

        Args:
            config_path (str): Path to the user configuration JSON.
            schema_path (str): Path to the JSON schema definition.
        """
        self.config_path = config_path
        self.schema_path = schema_path
        self.config: Dict[str, Any] = {}
        self.schema: Dict[str, Any] = {}
        self.run_id: Optional[str] = None
        self.logger = logging.getLogger("config_manager")

    def load_and_validate(self) -> Dict[str, Any]:
        """
        Main entry point. Loads config, validates schema/logic/resources,
        and propagates seeds.

        Returns:
            Dict[str, Any]: The fully validated configuration.

        Raises:
            ConfigurationError: If any validation step fails.
        """
        # 1. Load Files
        self.config = self._load_json(self.config_path)
        self.schema = self._load_json(self.schema_path)

        # 2. Structural Validation (Schema)
        self._validate_schema()

        # 3. Logical Validation (Business Rules & Bounds)
        self._validate_logic()

        # 4. Resource Validation
        self._validate_resources()

        # 5. Internal Seed Propagation (Reproducibility)
        self._propagate_seeds()

        return self.config

    def generate_run_id(self) -> str:
        """Timestamp-based run identifier (YYYYMMDD_HHMMSS)."""
        if not self.run_id:
            self.run_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.run_id

    def save_artifacts(self, output_dir: str) -> None:
        """
        Save configuration artifacts to the run directory for full reproducibility.

        Saves:
        1. config_used.json: The exact config object in memory.
        2. config_hash.txt: SHA256 hash for versioning.
        3. run_metadata.json: Environment details (Python version, Platform, etc.).
        """
        config_dir = Path(output_dir) / constants.CONFIG_DIR
        config_dir.mkdir(parents=True, exist_ok=True)

        with open(config_dir / "config_used.json", 'w') as f:
            json.dump(self.config, f, indent=2)

        config_str = json.dumps(self.config, sort_keys=True)
        config_hash = hashlib.sha256(config_str.encode()).hexdigest()

        with open(config_dir / "config_hash.txt", 'w') as f:
            f.write(config_hash)

        metadata = {
            'run_id': self.run_id,
            'start_time': datetime.now().isoformat(),
            'python_version': sys.version,
            'platform': sys.platform,
            'config_hash': config_hash,
            'working_directory': os.getcwd()
        }

        with open(config_dir / "run_metadata.json", 'w') as f:
            json.dump(metadata, f, indent=2)

    def _load_json(self, path: str) -> Dict[str, Any]:
        """Safely load a JSON file."""
        if not os.path.exists(path):
            raise ConfigurationError(f"File not found: {path}")
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {str(e)}")

    def _validate_schema(self) -> None:
        """Validate config structure against JSON schema."""
        try:
            jsonschema.validate(instance=self.config, schema=self.schema)
        except jsonschema.ValidationError as e:
            raise ConfigurationError(f"Schema validation failed: {e.message}")

    def _validate_logic(self) -> None:
        """Comprehensive logical validation."""
        # --- Folds Section ---
        folds = self.config.get('folds', {})
        k = folds.get('k', constants.DEFAULT_FOLDS)
        if k < 2:
            raise ConfigurationError(f"folds.k must be >= 2, got {k}.")

        # --- Analytics Section ---
        analytics = self.config.get('analytics', {})
        measure = analytics.get('measure', constants.DEFAULT_MEASURE)
        if measure not in MEASURES:
            raise ConfigurationError(f"Unknown measure '{measure}'. Available: {list(MEASURES)}")
        if analytics.get('variance_penalty', 0.0) < 0:
            raise ConfigurationError("analytics.variance_penalty must be non-negative.")

        # --- Search Section ---
        search = self.config.get('search', {})
        max_evals = search.get('max_evaluations', constants.DEFAULT_MAX_EVALUATIONS)
        if max_evals <= 0:
            raise ConfigurationError(f"search.max_evaluations must be > 0, got {max_evals}.")
        for key in ('max_seconds', 'max_seconds_per_candidate'):
            value = search.get(key)
            if value is not None and value <= 0:
                raise ConfigurationError(f"search.{key} must be > 0 when provided, got {value}.")
        if search.get('max_pipeline_depth', constants.DEFAULT_MAX_PIPELINE_DEPTH) < 0:
            raise ConfigurationError("search.max_pipeline_depth must be >= 0.")
        if search.get('max_algorithm_repeatability', constants.DEFAULT_MAX_ALGORITHM_REPEATABILITY) < 1:
            raise ConfigurationError("search.max_algorithm_repeatability must be >= 1.")
        patience = search.get('patience')
        if patience is not None and patience < 1:
            raise ConfigurationError(f"search.patience must be >= 1 when provided, got {patience}.")
        temperature = search.get('temperature')
        if temperature is not None and temperature <= 0:
            raise ConfigurationError(f"search.temperature must be > 0 when provided, got {temperature}.")

        # --- Catalog Section ---
        catalog = self.config.get('catalog', {})
        unknown_stages = set(catalog.get('stages', [])) - set(constants.STAGE_NAMES)
        if unknown_stages:
            raise ConfigurationError(f"Unknown stages in catalog: {sorted(unknown_stages)}")
        models = catalog.get('models', constants.MODEL_NAMES)
        if not models:
            raise ConfigurationError("catalog.models must list at least one model.")
        unknown_models = set(models) - set(constants.MODEL_NAMES)
        if unknown_models:
            raise ConfigurationError(f"Unknown models in catalog: {sorted(unknown_models)}")
        for name in catalog.get('stage_params', {}):
            if name not in constants.STAGE_NAMES:
                raise ConfigurationError(f"stage_params given for unknown stage '{name}'.")
        for name in catalog.get('model_params', {}):
            if name not in constants.MODEL_NAMES:
                raise ConfigurationError(f"model_params given for unknown model '{name}'.")

        # --- Optimizer Section ---
        optimizer = self.config.get('optimizer', {})
        if optimizer.get('tolerance', constants.DEFAULT_OPTIMIZER_TOLERANCE) <= 0:
            raise ConfigurationError("optimizer.tolerance must be > 0.")
        for key in ('max_evaluations', 'pipeline_max_evaluations'):
            if optimizer.get(key, 1) <= 0:
                raise ConfigurationError(f"optimizer.{key} must be > 0.")
        if optimizer.get('inner_folds') is not None and optimizer['inner_folds'] < 2:
            raise ConfigurationError("optimizer.inner_folds must be >= 2 when provided.")

        # --- Execution Section ---
        execution = self.config.get('execution', {})
        if 'n_jobs' in execution:
            n_jobs = execution['n_jobs']
            if n_jobs == 0 or n_jobs < -1:
                raise ConfigurationError(f"execution.n_jobs must be -1 (all cores) or a positive integer, got {n_jobs}")

    def _validate_resources(self) -> None:
        """
        Validate against system resources.
        Caps the evaluation budget and records a memory limit for other modules.
        """
        resources = self.config.get('resources', {})

        max_evals = self.config.get('search', {}).get('max_evaluations', constants.DEFAULT_MAX_EVALUATIONS)
        limit = resources.get('max_pipeline_evaluations', self.DEFAULT_MAX_PIPELINE_EVALUATIONS)
        if max_evals > limit:
            raise ConfigurationError(
                f"Search budget ({max_evals} evaluations) exceeds safety limit ({limit}). "
                "Reduce search.max_evaluations or increase 'resources.max_pipeline_evaluations'."
            )

        max_seconds = self.config.get('search', {}).get('max_seconds')
        if max_seconds is not None and max_seconds > self.DEFAULT_MAX_EXECUTION_TIME_SEC:
            self.logger.warning(
                f"search.max_seconds ({max_seconds}) exceeds {self.DEFAULT_MAX_EXECUTION_TIME_SEC}s."
            )

        system_ram_mb = int(psutil.virtual_memory().total / (1024 * 1024))
        safe_ram_limit = int(system_ram_mb * 0.8)
        config_max_ram = resources.get('max_memory_mb', safe_ram_limit)

        if config_max_ram > system_ram_mb:
            self.logger.warning(
                f"Configured max_memory_mb ({config_max_ram}MB) exceeds physical system RAM ({system_ram_mb}MB). "
                "This may lead to instability."
            )

        self.config.setdefault('resources', {})['max_memory_mb'] = config_max_ram

    def _propagate_seeds(self) -> None:
        """
        Propagate the master seed to internal components.
        Uses large, non-overlapping offsets to avoid correlation between components.
        """
        master_seed = self.config.get('search', {}).get('seed', 42)

        self.config['_internal_seeds'] = {
            'search': master_seed,
            'folds': master_seed + 1000,
            'model': master_seed + 2000,
            'stages': master_seed + 3000,
        }
        self.logger.debug(f"Seeds propagated from master ({master_seed}): {self.config['_internal_seeds']}")
