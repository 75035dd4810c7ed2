"""
qaforum - Trust-weighted answer curation and role lifecycle for a course Q&A forum.
"""

__version__ = "0.3.0"
