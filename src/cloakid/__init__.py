"""
CloakID: encrypted credential eligibility engine.

Users register identity attributes that stay encrypted end to end:
1. Subjects submit encrypted passport, birth year and country
2. Accredited verifiers attest that the record was checked
3. Projects receive an encrypted yes/no eligibility answer

The engine NEVER sees the attributes in plaintext.
Projects NEVER learn more than the answer they are granted.
"""

__version__ = "0.1.0"
