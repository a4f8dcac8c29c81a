"""Client-side components: encryption, input proofs and the KYC flow."""
from cloakid.client.crypto import CryptoClient, EncryptedInputBuilder
from cloakid.client.kyc import KYCClient
from cloakid.client.passport import (
    COUNTRY_CODES,
    passport_to_address,
    address_to_passport,
    is_valid_passport_address,
)

__all__ = [
    "CryptoClient",
    "EncryptedInputBuilder",
    "KYCClient",
    "COUNTRY_CODES",
    "passport_to_address",
    "address_to_passport",
    "is_valid_passport_address",
]
