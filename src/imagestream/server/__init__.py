"""HTTP surface: FastAPI app factory and ranged media responses."""
