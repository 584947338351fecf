"""
RawAgg
======
Aggregates respondents' raw sensor recordings for a stimulus into one
representative signal plus a falloff curve.
"""

__version__ = "1.0.0"
