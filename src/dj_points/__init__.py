"""
dj_points - a points ledger for workplace recognition built on Django.
"""

__version__ = "1.0.0"
