from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, List

from api.profiles.settings import PipelineSettings, load_pipeline_settings


@dataclass(frozen=True)
class CorsSettings:
    allow_origins: List[str]
    allow_methods: List[str]
    allow_headers: List[str]
    max_age: int


@dataclass(frozen=True)
class ApiSettings:
    cors: CorsSettings
    pipeline: PipelineSettings
    trust_forwarded_for: bool
    log_level: str


def _parse_csv(name: str, default: Iterable[str]) -> List[str]:
    raw = os.environ.get(name)
    if raw is None:
        return list(default)
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or list(default)


def load_settings() -> ApiSettings:
    cors = CorsSettings(
        allow_origins=_parse_csv("API_CORS_ALLOW_ORIGINS", ["*"]),
        allow_methods=_parse_csv("API_CORS_ALLOW_METHODS", ["GET", "OPTIONS"]),
        allow_headers=_parse_csv("API_CORS_ALLOW_HEADERS", ["Content-Type"]),
        max_age=int(os.environ.get("API_CORS_MAX_AGE", "600")),
    )

    return ApiSettings(
        cors=cors,
        pipeline=load_pipeline_settings(),
        trust_forwarded_for=os.environ.get("API_TRUST_FORWARDED_FOR", "false").lower()
        in ("1", "true", "yes"),
        log_level=os.environ.get("API_LOG_LEVEL", "INFO").upper(),
    )
