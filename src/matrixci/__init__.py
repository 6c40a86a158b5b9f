from .dsl import action, build, cache, on, only_on, pipeline, sh, skip_on, target, PipelineBuilder
from .matrix import expand
from .runner import load_workflow, run_pipeline
from .model import Pipeline, Step, TargetConfiguration

__all__ = [
    "action", "build", "cache", "on", "only_on", "pipeline", "sh", "skip_on", "target", "PipelineBuilder",
    "expand", "load_workflow", "run_pipeline", "Pipeline", "Step", "TargetConfiguration",
]
