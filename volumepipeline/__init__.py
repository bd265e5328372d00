"""
VolumePipeline - Prepare manga volume pages for e-reader documents

A pipeline for:
1. Fetching a volume's pages from the network and local disk in parallel
2. Auto-cropping page margins
3. Gamma correction
4. Rotating double-page spreads and splitting them into single pages
5. Handing the renumbered pages to a document writer
"""

__version__ = "1.0.0"
__author__ = "VolumePipeline"

from .config import PipelineConfig
from .pages import Page, PageStore
from .pipeline import VolumePipeline

__all__ = ["VolumePipeline", "PipelineConfig", "Page", "PageStore"]
