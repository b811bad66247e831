"""HTTP surface (FastAPI) over a single in-process rewards engine."""
