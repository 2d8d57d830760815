"""
Search Engine Module
====================

Responsibility:
- Drives the pipeline search: sample paths, evaluate, feed fitness back.
- Evaluation and wall-clock budgets plus patience-based early stopping.
- Streaming JSONL progress with resume support.
- Final summaries for the reporting collaborator.
"""

from .search_engine import PipelineSearchEngine, run_search
from .stopping_criteria import SearchStoppingCriteria
from .progress import NumpyEncoder, file_lock

__all__ = ['PipelineSearchEngine', 'SearchStoppingCriteria', 'run_search', 'NumpyEncoder', 'file_lock']
