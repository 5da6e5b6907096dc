"""Pipeline configuration: strategy enums and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class QueryMode(str, Enum):
    """How the user query is turned into the embedding input."""

    RAW = "raw"
    PREPROCESSED = "preprocessed"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the retrieval pipeline.

    The raw query is the default: expanding it with filler removal and
    contextual terms tends to hurt recall with current embedding models.
    """

    query_mode: QueryMode = QueryMode.RAW
    semantic_weight: float = 0.7
    keyword_weight: float = 0.3
    overlap_boost: float = 0.1
    min_candidates: int = 10
