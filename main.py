#!/usr/bin/env python
"""
Clinical Pipeline Search - Main Entry Point
Searches preprocessing/model pipelines for a tabular binary classification dataset.
"""
import sys
import logging
import argparse
import traceback
import random
from pathlib import Path

import numpy as np

from modules.config_manager import ConfigurationManager
from modules.data_package import DataPackage
from modules.logging_config import LoggingConfigurator
from modules.search_engine import PipelineSearchEngine
from utils.exceptions import ConfigurationError, PipelineSearchException
from utils.file_io import read_dataframe


def parse_arguments(argv=None):
    """
    Parse command-line arguments for configurable search execution.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Clinical Pipeline Search - preprocessing and model structure search",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--config", type=str, default="config/config.json",
                        help="Path to the configuration JSON file")
    parser.add_argument("--schema", type=str, default="config/schema.json",
                        help="Path to the configuration JSON schema")
    parser.add_argument("--data", type=str, default=None,
                        help="CSV or Parquet dataset (overrides data.file_path)")
    parser.add_argument("--run-id", type=str, default=None,
                        help="Optional run identifier (defaults to timestamp if not provided)")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose (DEBUG) logging")
    parser.add_argument("--dry-run", action="store_true",
                        help="Validate configuration and data without running the search")

    return parser.parse_args(argv)


def setup_global_determinism(config: dict, logger: logging.Logger):
    """Seed the global generators used by third-party code."""
    seed = config.get('_internal_seeds', {}).get('search', 42)
    logger.info(f"Setting Global Deterministic Seed: {seed}")
    random.seed(seed)
    np.random.seed(seed)


def load_package(config: dict, data_path, logger: logging.Logger) -> DataPackage:
    data_cfg = config.get('data', {})
    path = data_path or data_cfg.get('file_path')
    if not path:
        raise ConfigurationError("No dataset given: pass --data or set data.file_path.")
    if 'label_column' not in data_cfg:
        raise ConfigurationError("data.label_column must be specified.")

    frame = read_dataframe(Path(path))
    package = DataPackage.from_frame(
        frame,
        data_cfg['label_column'],
        subject_column=data_cfg.get('subject_column'),
        categorical=data_cfg.get('categorical', []),
    )
    logger.info(f"Data loaded from {path}: {package!r}")
    return package


def main(argv=None):
    """
    Load configuration, set up logging, ingest data and run the search.

    Returns:
        int: Exit code (0 for success, 1 for errors)
    """
    logger = None

    try:
        args = parse_arguments(argv)

        config_manager = ConfigurationManager(config_path=args.config, schema_path=args.schema)
        config = config_manager.load_and_validate()

        if args.verbose:
            config.setdefault('logging', {})['level'] = 'DEBUG'

        logging_configurator = LoggingConfigurator(config)
        logging_configurator.setup()
        logger = logging_configurator.get_logger('pipeline_search')
        logger.info(f"Configuration loaded from: {args.config}")

        if args.run_id:
            config_manager.run_id = args.run_id
        run_id = config_manager.generate_run_id()
        run_dir = Path(config.get('outputs', {}).get('base_results_dir', 'results'))
        config_manager.save_artifacts(str(run_dir))
        setup_global_determinism(config, logger)

        package = load_package(config, args.data, logger)

        if args.dry_run:
            logger.info("Dry run mode: validation complete. Exiting without running the search.")
            print("\n[SUCCESS] Configuration and data validated successfully.")
            return 0

        engine = PipelineSearchEngine(config, logger)
        result = engine.execute(package, run_id)

        logger.info("-" * 60)
        logger.info("SEARCH COMPLETED")
        logger.info(f"Run ID: {run_id}")
        logger.info(f"Stop reason: {result['stop_reason']}")
        logger.info(f"Best fitness ({result.get('measure')}): {result.get('fitness')}")
        logger.info("-" * 60)

        print(f"\n[SUCCESS] Search completed. Results saved to: {run_dir}")
        return 0

    except PipelineSearchException as e:
        msg = f"Pipeline Search Error: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1

    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Search interrupted by user.")
        if logger:
            logger.warning("Search interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        msg = f"Unexpected Error: {str(e)}"
        print(f"\n[CRITICAL] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
