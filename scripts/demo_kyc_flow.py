#!/usr/bin/env python3
"""
End-to-end KYC eligibility demo.

Walks through the full flow:
1. Administrator authorizes a verifier
2. Verifier configures a project's requirements
3. Users submit encrypted attributes and get attested
4. Users mint proof tokens; a project checks eligibility

Only the final yes/no answers are ever decrypted, and only by principals
holding a grant.
"""
import sys
import argparse
from pathlib import Path

# Add src to path for development
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from cloakid.client.kyc import KYCClient
from cloakid.server.engine import KYCEngine
from cloakid.shared.errors import PermissionDenied
from cloakid.shared.utils import Timer, project_id, unix_now, utc_year
from cloakid.substrate.paillier import PaillierCoprocessor

ADMIN = "0xadmin0000000000000000000000000000000001"
VERIFIER = "0xverifier000000000000000000000000000002"
PROJECT = "0xproject0000000000000000000000000000003"


def run_kyc_demo(key_size: int = 2048, min_age: int = 21):
    """Run the KYC demonstration."""
    print("=" * 70)
    print("CloakID - Encrypted KYC Eligibility")
    print("=" * 70)

    print(f"\nGenerating {key_size}-bit network key...")
    with Timer() as t:
        substrate = PaillierCoprocessor(key_size=key_size)
    print(f"  Key generation took {t.elapsed_ms:.0f}ms")

    engine = KYCEngine(substrate, administrator=ADMIN)
    engine.set_verifier(ADMIN, VERIFIER, True)

    project = project_id("DemoLaunchpad")
    engine.set_policy(VERIFIER, project, min_age, [1, 2, 3], requires_passport=True)
    print(f"\nProject {project[:18]}...: min_age={min_age}, countries=US/UK/CA, passport required")

    year = utc_year(unix_now())
    users = {
        "alice": ("0xalice00000000000000000000000000000000a1", "P1234567", year - 30, "UK"),
        "bob": ("0xbob0000000000000000000000000000000000b2", "X7654321", year - 30, "NL"),
        "carol": ("0xcarol00000000000000000000000000000000c3", "K0000001", year - 16, "US"),
    }

    print("\n" + "=" * 70)
    print("SUBMISSION AND ATTESTATION")
    print("=" * 70)
    for name, (address, passport, birth_year, country) in users.items():
        client = KYCClient(engine, address)
        timing = client.submit_kyc(passport, birth_year, country)
        engine.attest(VERIFIER, address)
        print(f"  {name:<6} submitted in {timing['total_ms']:.0f}ms, attested by verifier")

    print("\n" + "=" * 70)
    print("PROOF TOKENS")
    print("=" * 70)
    for name, (address, *_rest) in users.items():
        client = KYCClient(engine, address)
        token, timing = client.generate_proof(project)
        verdict = "ELIGIBLE" if token else "not eligible"
        print(f"  {name:<6} token={hex(token)[:18]:<18} {verdict:<13} ({timing['total_ms']:.0f}ms)")

    print("\n" + "=" * 70)
    print("PROJECT-SIDE CHECK")
    print("=" * 70)
    project_client = KYCClient(engine, PROJECT)
    alice = users["alice"][0]
    eligible, timing = project_client.check_eligibility(alice, project)
    print(f"  Project learns alice eligible={eligible} ({timing['total_ms']:.0f}ms)")

    _, birth_year, _ = engine.encrypted_data_of(alice)
    try:
        project_client.decrypt(birth_year)
    except PermissionDenied:
        print("  Project cannot decrypt alice's birth year: permission denied")

    print("\n" + "=" * 70)
    print("PRIVACY GUARANTEES")
    print("=" * 70)
    print("  [x] Engine never saw passport, birth year or country")
    print("  [x] Project only learned a yes/no answer")
    print("  [x] Proof tokens exist whether or not the user qualified")


def main():
    parser = argparse.ArgumentParser(description="Demo the CloakID KYC flow")
    parser.add_argument(
        "--key-size",
        type=int,
        default=2048,
        help="Paillier key size in bits",
    )
    parser.add_argument(
        "--min-age",
        type=int,
        default=21,
        help="Minimum age for the demo project",
    )
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Quick mode with a 1024-bit key",
    )

    args = parser.parse_args()
    run_kyc_demo(key_size=1024 if args.quick else args.key_size, min_age=args.min_age)


if __name__ == "__main__":
    main()
