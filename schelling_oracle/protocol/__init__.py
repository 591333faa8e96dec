"""
Protocol module for the Schelling oracle

Request lifecycle, commit/reveal collection, consensus aggregation,
reputation and settlement.
"""

from schelling_oracle.protocol.aggregator import ConsensusAggregator
from schelling_oracle.protocol.commitment import compute_commitment, verify_commitment
from schelling_oracle.protocol.service import OracleService
from schelling_oracle.protocol.storage import OracleStorage

__all__ = [
    "ConsensusAggregator",
    "OracleService",
    "OracleStorage",
    "compute_commitment",
    "verify_commitment",
]
