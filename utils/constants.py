# utils/constants.py

# --- Top-Level Result Directories ---
CONFIG_DIR = "01_RunConfiguration"          # Run config, metadata, seeds
SEARCH_DIR = "02_PipelineSearch"            # Candidate evaluations, progress
BEST_PIPELINE_DIR = "03_BestPipeline"       # Best candidate descriptor

# --- File Names ---
PROGRESS_FILE = "search_progress.jsonl"
ALL_CANDIDATES_FILE = "all_candidates.parquet"
BEST_PIPELINE_FILE = "best_pipeline.json"
LOG_FILE = "pipeline_search.log"

# --- Catalog ---
STAGE_NAMES = [
    "DataOptimizer",
    "FeatureSelection",
    "PCA",
    "IsolationForest",
    "Undersampling",
    "Oversampling",
]

MODEL_NAMES = [
    "DecisionTree",
    "RandomForest",
    "KernelDensity",
]

# Edge label prefix marking a model choice in the pipeline tree
MODEL_EDGE_PREFIX = "model:"

# --- Defaults ---
DEFAULT_FOLDS = 5
DEFAULT_MEASURE = "F1-Score"
DEFAULT_MAX_EVALUATIONS = 50
DEFAULT_MAX_PIPELINE_DEPTH = 3
DEFAULT_MAX_ALGORITHM_REPEATABILITY = 2
DEFAULT_OPTIMIZER_TOLERANCE = 1e-5
DEFAULT_OPTIMIZER_MAX_EVALUATIONS = 100
DEFAULT_PIPELINE_MAX_EVALUATIONS = 30
DEFAULT_INNER_FOLDS = 3

# Kernel density rendering resolution
KDE_BIN_COUNT = 1000

# Subject id prefix for rows synthesized by oversampling
SYNTHETIC_SUBJECT_PREFIX = "synthetic-"
