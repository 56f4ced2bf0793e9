"""Run configuration for the recycle bin decoders."""

from .data_models import BinType, DEBUG_ENV_VAR, ReportFormat, RunConfig

__all__ = ['BinType', 'DEBUG_ENV_VAR', 'ReportFormat', 'RunConfig']
