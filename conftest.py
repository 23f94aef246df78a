"""
Root conftest.py for the release gate.

Puts the project root on sys.path so ``release_gate`` and ``tests.fakes``
import without an installed package.
"""

import os
import sys

project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
