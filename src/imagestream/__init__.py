"""imagestream: streaming relay for OpenAI image generation and media analysis."""

__all__ = ["__version__"]
__version__ = "0.1.0"
