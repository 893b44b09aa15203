"""
dcgame: Stackelberg leader/follower load-allocation game for data centers.
"""

__version__ = "0.1.0"
