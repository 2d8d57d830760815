"""
Custom exception hierarchy for the Clinical Pipeline Search System.
"""

class PipelineSearchException(Exception):
    """Base exception for all system errors."""
    pass

class ConfigurationError(PipelineSearchException):
    """Configuration validation failed."""
    pass

class DataValidationError(PipelineSearchException):
    """Data validation failed."""
    pass

class ModelTrainingError(PipelineSearchException):
    """Model training failed or an untrained model was used."""
    pass

class PreprocessingError(PipelineSearchException):
    """A preprocessing stage was used before it was built."""
    pass

class UnknownFeatureError(PipelineSearchException):
    """A requested feature name is not present in the schema."""
    pass

class InsufficientSubjectsError(PipelineSearchException):
    """Fold count exceeds the number of distinct subjects."""
    pass

class DegenerateMatrixError(PipelineSearchException):
    """Zero variance or singular input to a stage that needs invertibility."""
    pass

class EmptyPipelineError(PipelineSearchException):
    """Pipeline candidate has no model stage."""
    pass

class OptimizerBudgetExhausted(PipelineSearchException):
    """Evaluation budget ran out. Carries the best-so-far result."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
