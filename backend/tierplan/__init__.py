"""Tierplan backend: referral codes, plan deposits, referral rewards and withdrawals."""

__version__ = "1.0.0"
