"""Adapters layer for CliniDoc.

This module contains the adapters that interface with storage. Adapters
implement Port interfaces defined in the domain layer.
"""
