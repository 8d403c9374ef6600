"""Output artifact writers."""

from .artifacts import load_blend_config, write_artifacts

__all__ = ["load_blend_config", "write_artifacts"]
