"""Statistical sample sizing and selection for audit testing."""

__version__ = "1.0.0"

# Public API exposed lazily so importing the package stays cheap.


def __getattr__(name: str):
    if name in {"SamplingOrchestrator", "validate_request"}:
        from . import engine

        return getattr(engine, name)
    if name in {"SamplingRequest", "SamplingResult", "SamplingPlan", "Transaction"}:
        from . import models

        return getattr(models, name)
    if name == "calculate_sample_size":
        from .sizing import calculate_sample_size

        return calculate_sample_size
    if name == "select_sample":
        from .sampler import select_sample

        return select_sample
    raise AttributeError(name)
