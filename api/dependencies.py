from __future__ import annotations

from functools import lru_cache

from tinderizer.pipeline import Pipeline, PipelineConfig, build_pipeline, load_config


@lru_cache(maxsize=1)
def get_config() -> PipelineConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_pipeline() -> Pipeline:
    """
    One pipeline per process, started on first use.
    """
    return build_pipeline(get_config()).start()


def shutdown_pipeline(timeout: float = 5.0) -> None:
    if get_pipeline.cache_info().currsize:
        get_pipeline().stop(timeout=timeout)
        get_pipeline.cache_clear()
