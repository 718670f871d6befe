"""
Omnichain token list builder.

Discovers bridge-token peers on-chain, computes bridging fees, and reconciles the
result with public token lists into an active and an inactive token list.
"""

__version__ = "1.0.0"
