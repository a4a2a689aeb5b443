#!/usr/bin/env python3
"""
Standalone script to run the ArticleRAG CLI without installing the package.

Usage:
    uv run scripts/run_pipeline.py ask --query "Question"
    uv run scripts/run_pipeline.py cache_metrics
"""

import sys
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from articlerag.cli.main import main

if __name__ == "__main__":
    main()
