# -*- coding: utf-8 -*-
"""
Shared test setup for mail printer tests.
"""

import sys
from pathlib import Path

# Ensure project root and test helpers are importable without pip install
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))
