"""
Crate Staleness Checker

Find which upstream crates a downstream Cargo project depends on, and which of them
lag behind the latest stable release on the registry.
"""

__version__ = "0.1.0"

from .analyzer import StalenessAnalyzer, extract_dependencies, find_outdated
from .cli import main

__all__ = ["StalenessAnalyzer", "extract_dependencies", "find_outdated", "main"]
