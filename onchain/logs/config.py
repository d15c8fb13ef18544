"""Administrative configuration.

Every option has a default suited to a public, rate-limited endpoint and can
be overridden from the environment as ``ONCHAIN_LOGS_<FIELD>`` (for example
``ONCHAIN_LOGS_MAX_SCAN_BLOCKS=50000``).
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .runtime.chunking.definitions import ChunkPolicy

ENV_PREFIX = "ONCHAIN_LOGS_"
DEFAULT_RPC_URL = "https://public.moonlet.cloud/tempo"


class RetrievalSettings(BaseModel):
    """Settings for the upstream provider, cache and retrieval engine."""

    rpc_url: str = Field(DEFAULT_RPC_URL, min_length=1)
    request_timeout: float = Field(30.0, gt=0)

    # Range estimation
    max_scan_blocks: int = Field(200_000, ge=0)
    sample_offset: int = Field(2000, gt=0)
    max_window_seconds: int = Field(7 * 24 * 3600, gt=0)

    # Chunked retrieval
    concurrency_limit: int = Field(4, gt=0)
    starting_chunk_size: int = Field(5000, gt=0)
    min_chunk_size: int = Field(200, gt=0)
    max_suggestion_hops: int = Field(8, ge=0)
    retrieval_deadline: float | None = Field(None, gt=0)

    # Retry
    max_attempts: int = Field(20, gt=0)
    backoff_base_ms: int = Field(200, gt=0)
    backoff_cap_ms: int = Field(10_000, gt=0)
    backoff_max_exponent: int = Field(6, ge=0)

    # Cache
    time_model_ttl: float = Field(30.0, gt=0)
    block_timestamp_ttl: float = Field(600.0, gt=0)
    cache_max_entries: int = Field(500, gt=0)
    cache_sweep_interval: float = Field(300.0, gt=0)

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @model_validator(mode="after")
    def validate_chunk_sizes(self) -> RetrievalSettings:
        if self.min_chunk_size > self.starting_chunk_size:
            raise ValueError("min_chunk_size cannot exceed starting_chunk_size")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> RetrievalSettings:
        """Build settings from ``ONCHAIN_LOGS_*`` variables plus explicit overrides.

        Empty variables are ignored. Values are validated (and coerced) by
        pydantic, so ``"50000"`` becomes ``50000``.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw.strip():
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)

    def chunk_policy(self) -> ChunkPolicy:
        return ChunkPolicy(
            starting_chunk_size=self.starting_chunk_size,
            min_chunk_size=self.min_chunk_size,
            concurrency_limit=self.concurrency_limit,
            max_attempts=self.max_attempts,
            request_timeout=self.request_timeout,
            max_suggestion_hops=self.max_suggestion_hops,
            deadline=self.retrieval_deadline,
        )
