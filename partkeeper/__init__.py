"""
partkeeper - keeps the next range partition of a partitioned table provisioned.
"""

__version__ = "1.0.0"
