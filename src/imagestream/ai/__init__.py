"""OpenAI-facing adapters: streaming generation and vision analysis."""
