from .detector import detect, parse_reference
from .exceptions import ProfileStatsError, SourceError, SourceErrorKind, UnsupportedPlatformError
from .models import BaseProfile, LookupResult, Platform, ProfileReference
from .normalize import normalize
from .pipeline import ProfilePipeline, StageResult
from .settings import PipelineSettings, load_pipeline_settings

__all__ = [
    "BaseProfile",
    "LookupResult",
    "Platform",
    "PipelineSettings",
    "ProfilePipeline",
    "ProfileReference",
    "ProfileStatsError",
    "SourceError",
    "SourceErrorKind",
    "StageResult",
    "UnsupportedPlatformError",
    "detect",
    "load_pipeline_settings",
    "normalize",
    "parse_reference",
]
