"""Session pickers for coding agents and speech-to-text with hallucination filtering."""

__version__ = "0.1.0"