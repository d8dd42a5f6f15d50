"""NoteSynth: lecture captions to Markdown notes via rate-limited LLM providers."""

__version__ = "0.1.0"
