"""
soap_core - storage, offline sync and business rules for the Soap Stock Dashboard.
"""

__version__ = "1.0.0"
