"""
Catalog of checkable rights: operations, assets and their permission pairs.
"""
