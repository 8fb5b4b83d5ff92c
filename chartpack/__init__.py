"""Upload-to-chart-pack service: validate, analyze, normalize, validate, clean up."""

__version__ = "0.1.0"
