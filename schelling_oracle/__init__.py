"""
Schelling oracle: commit/reveal data requests settled on a median consensus.
"""

__version__ = "0.1.0"
