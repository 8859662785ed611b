"""
AssetGuard: role and asset-instance authorization with audit logging.
"""
