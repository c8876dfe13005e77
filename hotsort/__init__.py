"""
hotsort
=======

Hot folder intake and filing.

Features:
- Stage files dropped into a hot folder into a durable item store
- Classify them offline with a fixed-priority rule chain, optionally
  consulting a local LLM
- File them into a dated, categorized target tree without collisions
"""

__version__ = "0.1.0"
