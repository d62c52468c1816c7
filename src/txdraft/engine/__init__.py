"""Draft engine: composition, signing protocol, result extraction and pipeline."""

from txdraft.engine.pipeline import DraftPipeline, PipelineResult
from txdraft.engine.services.composer import DraftComposer, Operation

__all__ = ["DraftComposer", "DraftPipeline", "Operation", "PipelineResult"]
