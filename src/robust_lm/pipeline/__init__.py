"""Pipeline orchestration"""

from .orchestrator import (
    Pipeline,
    PipelineStep,
    PipelineResult,
    StepResult,
    StepStatus,
    RobustRegressionPipeline
)

__all__ = [
    'Pipeline',
    'PipelineStep',
    'PipelineResult',
    'StepResult',
    'StepStatus',
    'RobustRegressionPipeline'
]
