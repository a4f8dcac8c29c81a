"""
Client-side KYC orchestration.

Coordinates the flow for one principal:
1. Encrypt attributes and obtain an input proof
2. Submit to the engine
3. Request eligibility answers or proof tokens
4. Decrypt the handles this principal was granted
"""
from typing import Dict, Optional, Tuple, Union

from cloakid.client.crypto import CryptoClient, EncryptedInputBuilder
from cloakid.client.passport import address_from_int, address_to_passport, country_code, passport_to_address
from cloakid.server.engine import KYCEngine
from cloakid.shared.utils import Timer, utc_year


class KYCClient:
    """
    Client-side coordinator for a single principal.

    Never sees more plaintext than the principal's grants allow.
    """

    def __init__(self, engine: KYCEngine, principal: str, crypto: Optional[CryptoClient] = None):
        """
        Initialize KYC client.

        Args:
            engine: Engine to talk to
            principal: Authenticated identity of this client
            crypto: Encrypt-only client (built from the substrate's public key if omitted)
        """
        self.engine = engine
        self.principal = principal
        self.crypto = crypto or CryptoClient.from_public_key(engine.substrate.public_key)

    def submit_kyc(
        self,
        passport_number: str,
        birth_year: int,
        country: Union[int, str],
        verbose: bool = False,
    ) -> dict:
        """
        Encrypt and submit this principal's attributes.

        Args:
            passport_number: Passport number (max 20 alphanumeric characters)
            birth_year: Four-digit birth year
            country: Numeric country code or two-letter name
            verbose: Print timing information

        Returns:
            Timing info

        Raises:
            ValueError: if birth_year lies in the future (the encrypted age
                        would wrap and satisfy any minimum age)
        """
        if birth_year > utc_year(self.engine.clock()):
            raise ValueError(f"Birth year {birth_year} is in the future")

        timing = {}
        code = country_code(country) if isinstance(country, str) else country

        with Timer() as t:
            encrypted_input = (
                EncryptedInputBuilder(self.engine.substrate, self.crypto, self.engine.address, self.principal)
                .add_address(passport_to_address(passport_number))
                .add32(birth_year)
                .add8(code)
                .encrypt()
            )
        timing["encrypt_ms"] = t.elapsed_ms

        with Timer() as t:
            self.engine.submit(self.principal, encrypted_input)
        timing["engine_ms"] = t.elapsed_ms
        timing["total_ms"] = timing["encrypt_ms"] + timing["engine_ms"]

        if verbose:
            print(f"  Encryption took {timing['encrypt_ms']:.2f}ms")
            print(f"  Submission took {timing['engine_ms']:.2f}ms")
        return timing

    def decrypt(self, handle: str) -> int:
        """Decrypt a handle this principal holds a grant for."""
        return self.engine.substrate.user_decrypt(handle, self.principal)

    def check_eligibility(self, subject: str, project_id: str) -> Tuple[bool, dict]:
        """
        Ask the engine whether subject qualifies for a project and decrypt the answer.

        Returns:
            Tuple of (eligible, timing info)
        """
        timing = {}
        with Timer() as t:
            handle = self.engine.evaluate(self.principal, subject, project_id)
        timing["engine_ms"] = t.elapsed_ms

        with Timer() as t:
            eligible = bool(self.decrypt(handle))
        timing["decrypt_ms"] = t.elapsed_ms
        timing["total_ms"] = timing["engine_ms"] + timing["decrypt_ms"]
        return eligible, timing

    def generate_proof(self, project_id: str) -> Tuple[int, dict]:
        """
        Mint a proof token for this principal and decrypt it.

        A zero token means the principal did not qualify.

        Returns:
            Tuple of (token value, timing info)
        """
        timing = {}
        with Timer() as t:
            handle = self.engine.issue_proof(self.principal, project_id)
        timing["engine_ms"] = t.elapsed_ms

        with Timer() as t:
            token = self.decrypt(handle)
        timing["decrypt_ms"] = t.elapsed_ms
        timing["total_ms"] = timing["engine_ms"] + timing["decrypt_ms"]
        return token, timing

    def my_attributes(self) -> Dict[str, object]:
        """Decrypt this principal's own stored attributes."""
        passport, birth_year, country = self.engine.encrypted_data_of(self.principal)
        address = address_from_int(self.decrypt(passport))
        return {
            "passport": address_to_passport(address),
            "passport_address": address,
            "birth_year": self.decrypt(birth_year),
            "country": self.decrypt(country),
        }
