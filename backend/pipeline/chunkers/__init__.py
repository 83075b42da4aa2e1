"""Chunker subpackage – one class per source system."""

from pipeline.chunkers.emdn_chunker import EmdnChunker
from pipeline.chunkers.who_chunker import WhoClassificationChunker
from pipeline.chunkers.icd11_chunker import Icd11LinearizationChunker

__all__ = [
    "EmdnChunker",
    "WhoClassificationChunker",
    "Icd11LinearizationChunker",
]
