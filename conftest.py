# conftest.py
# -*- coding: utf-8 -*-
"""
Make sure the project root (next to rentwatch/) is on sys.path so that
`import rentwatch.*` works in tests without installing the package.
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
