"""
Command-line experiment runners.
"""
