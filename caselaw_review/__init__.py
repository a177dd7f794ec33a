"""Case-Law Review - LLM pipeline that turns court rulings into a case-law review."""

__version__ = "0.1.0"
