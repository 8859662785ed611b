"""
Idempotent grant links: role-permission, user-role and user-asset-instance.
"""
