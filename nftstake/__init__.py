# MIT License
# Copyright (c) 2025 Hashborn

"""
NFT Stake Vault

Custodies NFTs and accrues a reward asset per deposited token at an
administrator-controlled, variable rate.
"""

__version__ = "0.1.0"
