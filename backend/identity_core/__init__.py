"""Identity & access control core.

Account credentials, session issuance, verification and password-reset
token lifecycles, the role hierarchy, third-party identity linking, and
scheduled maintenance of stale accounts and tokens.
"""
