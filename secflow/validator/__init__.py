"""Validator: routes repository messages by whether they carry the probe file"""

from .checker import ExistenceChecker
from .clone_url import ParsedCloneURL, UnrecognizedCloneURL, extract_owner, parse_clone_url
from .pipeline import PipelineState, PipelineStats, ValidationPipeline
from .router import Router, RoutingDecision

__all__ = [
    "ExistenceChecker",
    "ParsedCloneURL",
    "PipelineState",
    "PipelineStats",
    "Router",
    "RoutingDecision",
    "UnrecognizedCloneURL",
    "ValidationPipeline",
    "extract_owner",
    "parse_clone_url",
]
