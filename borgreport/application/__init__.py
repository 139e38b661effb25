"""Pipeline orchestration: aggregation, concurrency and delivery."""

from . import aggregation, delivery, pipeline

__all__ = ["aggregation", "delivery", "pipeline"]
