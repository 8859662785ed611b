"""
Authorization decisions combining role-derived permissions with asset instance grants.
"""
