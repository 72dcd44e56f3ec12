"""Models, repositories and caches shared by the pipeline."""
