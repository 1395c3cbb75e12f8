"""HTTP trigger surface (FastAPI)."""
