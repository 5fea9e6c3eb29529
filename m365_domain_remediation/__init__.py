"""
M365 Domain Remediation
=======================
Removes every reference to a retired domain from Entra ID users'
userPrincipalName, mail and proxyAddresses, moving them onto a fallback
domain without breaking UPN uniqueness.

Run with --dry-run first: plans are exported and nothing is written.
"""

__version__ = "1.0.0"
__author__ = "M365 Domain Remediation"
