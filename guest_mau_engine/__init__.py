"""
Guest MAU Exposure Engine
=========================
Estimates Monthly-Active-User governance billing exposure for guest accounts
in an Entra ID tenant from guest metadata and directory audit activity.

WARNING: This tool operates in STRICT READ-ONLY mode.
         No write operations will be performed against the tenant.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
