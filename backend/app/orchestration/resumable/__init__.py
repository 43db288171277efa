from .chunk_driver import ChunkBudget, ChunkProgress, Page, ScanState, ScanStrategy, apply_page, run_chunk

__all__ = ["ChunkBudget", "ChunkProgress", "Page", "ScanState", "ScanStrategy", "apply_page", "run_chunk"]
