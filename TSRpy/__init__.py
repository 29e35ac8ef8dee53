# TSRpy package init
"""
TSRpy: Python CLI for TSR Calling

Calls transcription start regions (TSRs) from PRO-Cap fragment intervals.
"""

__version__ = "0.1.0"

from TSRpy.main import app, main

__all__ = [
    'app',
    'main',
    '__version__',
]
