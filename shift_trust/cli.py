#!/usr/bin/env python3
"""
Shift Trust Command Line Interface

Usage:
    shift-trust keygen [--count N] [--output <file>]
    shift-trust tx-hash --sender <hex> --amount <n> --recipient <hex> --created-at <ts>
    shift-trust tx-hash --channel <hex> --sender <hex> --amount <n> --recipient <hex>
    shift-trust proof --device-id <hex> --private-key-hash <hex> --public-key <hex> --nonce <hex>
    shift-trust sign-request --key <file> --operation <op> --params <file>
    shift-trust submit --request <file> [--db <path>]
    shift-trust verify-attestation --device-id <hex> [--db <path>]
    shift-trust verify-encumbrance --device-id <hex> --key-index <n> --tx-hash <hex> [--db <path>]
    shift-trust stats [--db <path>]
    shift-trust demo
"""

import argparse
import json
import secrets
import sys

from . import config as settings


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r') as f:
        return json.load(f)


def save_json(data, path: str):
    """Save JSON to file."""
    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def emit(data, output=None):
    if output:
        save_json(data, output)
        print(f"Saved to: {output}", file=sys.stderr)
    else:
        print(json.dumps(data, indent=2))


def open_protocol(db_path: str):
    """Protocol bound to a durable SQLite store."""
    from shift_trust import ProtocolConfig, ShiftContext, ShiftProtocol, SQLiteRecordStore

    ctx = ShiftContext(store=SQLiteRecordStore(db_path), config=ProtocolConfig())
    return ShiftProtocol(ctx)


def cmd_keygen(args):
    """Generate Ed25519 key pairs (caller identities or one-time keys)."""
    from shift_trust import generate_signing_key

    pairs = []
    for _ in range(args.count):
        signing_key, verify_key = generate_signing_key()
        pairs.append({"signing_key": signing_key.hex(), "verify_key": verify_key.hex()})

    emit(pairs[0] if args.count == 1 else pairs, args.output)
    return 0


def cmd_tx_hash(args):
    """Compute a transaction fingerprint."""
    from shift_trust import p2p_transaction_hash, transaction_hash

    sender = bytes.fromhex(args.sender)
    recipient = bytes.fromhex(args.recipient)
    if args.channel:
        h = p2p_transaction_hash(bytes.fromhex(args.channel), sender, args.amount, recipient)
    else:
        if args.created_at is None:
            print("--created-at is required without --channel", file=sys.stderr)
            return 2
        h = transaction_hash(sender, args.amount, recipient, args.created_at)
    print(h.hex())
    return 0


def cmd_proof(args):
    """Build a destruction proof for a one-time key."""
    from shift_trust import InMemoryRecordStore, ShiftContext, ShiftProtocol

    signing_key = None
    if args.signing_key:
        signing_key = bytes.fromhex(load_json(args.signing_key)["signing_key"])

    protocol = ShiftProtocol(ShiftContext(store=InMemoryRecordStore()))
    proof = protocol.create_destruction_proof(
        args.device_id,
        args.private_key_hash,
        args.public_key,
        args.nonce or secrets.token_hex(32),
        signing_key=signing_key,
        transaction_hash=args.tx_hash,
        proof_type=args.proof_type,
    )
    emit(proof.to_dict(), args.output)
    return 0


def cmd_sign_request(args):
    """Sign a protocol request with a caller key."""
    from shift_trust import sign_request

    key = load_json(args.key)
    params = load_json(args.params) if args.params else {}
    request = sign_request(bytes.fromhex(key["signing_key"]), args.operation, params)
    emit(request.to_dict(), args.output)
    return 0


def cmd_submit(args):
    """Submit a signed request against the local store."""
    from shift_trust import SignedRequest

    request = SignedRequest.from_dict(load_json(args.request))
    protocol = open_protocol(args.db)
    try:
        result = protocol.submit(request)
    finally:
        protocol.ctx.close()
    emit(result, args.output)
    return 0


def cmd_verify_attestation(args):
    """Check that a device is validly attested."""
    protocol = open_protocol(args.db)
    try:
        protocol.verify_attestation(args.device_id)
    finally:
        protocol.ctx.close()
    print("✓ attestation valid")
    return 0


def cmd_verify_encumbrance(args):
    """Check that a key was consumed for a transaction."""
    protocol = open_protocol(args.db)
    try:
        protocol.verify_encumbrance(args.device_id, args.key_index, args.tx_hash)
    finally:
        protocol.ctx.close()
    print("✓ encumbrance valid")
    return 0


def cmd_stats(args):
    """Print registry and encumbrance counters."""
    protocol = open_protocol(args.db)
    try:
        emit(protocol.stats())
    finally:
        protocol.ctx.close()
    return 0


def cmd_demo(args):
    """Run a demonstration of attestation and key encumbrance."""
    from shift_trust import (
        AttestationQuote,
        InMemoryRecordStore,
        KeyAlreadyEncumbered,
        ProtocolConfig,
        ShiftContext,
        ShiftProtocol,
        generate_signing_key,
        issue_certificate,
        sha256,
        sign_quote,
        sign_request,
        transaction_hash,
    )

    print("=" * 60)
    print("Shift Trust Demonstration")
    print("=" * 60)

    ctx = ShiftContext(
        store=InMemoryRecordStore(),
        config=ProtocolConfig(verifier="ed25519"),
    )
    protocol = ShiftProtocol(ctx)

    root_sk, root_vk = generate_signing_key()
    mfr_sk, mfr_vk = generate_signing_key()
    owner_sk, owner_vk = generate_signing_key()
    one_time = [generate_signing_key() for _ in range(3)]

    manufacturer_id = sha256(b"demo-manufacturer")
    device_id = sha256(b"demo-device")

    protocol.submit(sign_request(root_sk, "initialize_registry", {}))
    protocol.submit(sign_request(root_sk, "initialize_encumbrance_authority", {}))
    protocol.submit(sign_request(root_sk, "add_trusted_manufacturer", {
        "manufacturer_id": manufacturer_id.hex(),
        "name": "Demo Secure Element Co",
        "public_key": mfr_vk.hex(),
    }))
    print(f"\nTrusted manufacturer: {manufacturer_id.hex()[:16]}...")

    quote = sign_quote(device_id, AttestationQuote(
        version=1,
        signature=bytes(64),
        public_key=owner_vk,
        nonce=secrets.token_bytes(32),
        timestamp=ctx.now(),
        measurements=[sha256(b"firmware"), sha256(b"bootloader")],
    ), mfr_sk)
    certificate = issue_certificate(device_id, b"demo-device-certificate", mfr_sk)

    protocol.submit(sign_request(owner_sk, "create_attestation", {
        "device_id": device_id.hex(),
        "manufacturer_id": manufacturer_id.hex(),
        "quote": quote.to_dict(),
        "certificate": certificate.hex(),
    }))
    print(f"Device attested: {device_id.hex()[:16]}...")

    protocol.submit(sign_request(owner_sk, "initialize_key_pool", {
        "device_id": device_id.hex(),
        "total_capacity": 10,
        "initial_keys": [vk.hex() for _, vk in one_time],
    }))
    print(f"Key pool initialized with {len(one_time)} one-time keys")

    print("\n" + "-" * 60)
    print("Scenario 1: Transfer authorized by one-time key 0")
    print("-" * 60)

    key_sk, key_vk = one_time[0]
    tx = transaction_hash(owner_vk, 1000, sha256(b"recipient-device"), ctx.now())
    proof = protocol.create_destruction_proof(
        device_id, sha256(key_sk), key_vk, secrets.token_bytes(32),
        signing_key=key_sk, transaction_hash=tx,
    )
    protocol.submit(sign_request(owner_sk, "encumber_key", {
        "device_id": device_id.hex(),
        "key_index": 0,
        "public_key": key_vk.hex(),
        "destruction_proof": proof.to_dict(),
        "transaction_hash": tx.hex(),
    }))
    print(f"Transfer authorized: {protocol.authorize_transfer(device_id, 0, tx)}")

    print("\n" + "-" * 60)
    print("Scenario 2: Second use of key 0")
    print("-" * 60)

    tx2 = transaction_hash(owner_vk, 1000, sha256(b"another-recipient"), ctx.now())
    proof2 = protocol.create_destruction_proof(
        device_id, sha256(key_sk), key_vk, secrets.token_bytes(32),
        signing_key=key_sk, transaction_hash=tx2,
    )
    try:
        protocol.submit(sign_request(owner_sk, "encumber_key", {
            "device_id": device_id.hex(),
            "key_index": 0,
            "public_key": key_vk.hex(),
            "destruction_proof": proof2.to_dict(),
            "transaction_hash": tx2.hex(),
        }))
    except KeyAlreadyEncumbered as e:
        print(f"Rejected: {e.code.value}")
    print(f"Encumbrance for second transaction: {protocol.ledger.is_encumbered(device_id, 0, tx2)}")

    print("\n" + "-" * 60)
    print("Scenario 3: Revoked device")
    print("-" * 60)

    protocol.submit(sign_request(root_sk, "revoke_attestation", {
        "device_id": device_id.hex(),
        "reason": "Compromised",
    }))
    print(f"Device attested: {protocol.attestations.is_attested(device_id)}")

    print("\n" + "=" * 60)
    print("Demonstration complete.")
    print("=" * 60)
    return 0


def main(argv=None):
    from shift_trust import ShiftError
    from shift_trust.logging_config import configure_logging

    parser = argparse.ArgumentParser(
        description="Shift Trust CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shift-trust demo                            Run demonstration
  shift-trust keygen -o owner.json
  shift-trust keygen -n 10 -o pool_keys.json
  shift-trust sign-request -k owner.json --operation initialize_key_pool -p params.json -o req.json
  shift-trust submit -r req.json --db data/shift_trust.db
  shift-trust verify-encumbrance -d <device> -i 0 -t <tx-hash>
        """
    )
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="Log level for audit output (default: $SHIFT_LOG_LEVEL or WARNING)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate Ed25519 key pairs")
    keygen_parser.add_argument("-n", "--count", type=int, default=1, help="Number of key pairs")
    keygen_parser.add_argument("-o", "--output", help="Output JSON file")

    # tx-hash
    tx_parser = subparsers.add_parser("tx-hash", help="Compute transaction fingerprint")
    tx_parser.add_argument("--sender", required=True, help="Sender (hex)")
    tx_parser.add_argument("--amount", required=True, type=int, help="Amount (u64)")
    tx_parser.add_argument("--recipient", required=True, help="Recipient (hex)")
    tx_parser.add_argument("--created-at", type=int, help="Creation timestamp")
    tx_parser.add_argument("--channel", help="Payment channel id (hex) for p2p transfers")

    # proof
    proof_parser = subparsers.add_parser("proof", help="Create destruction proof")
    proof_parser.add_argument("-d", "--device-id", required=True, help="Device id (hex)")
    proof_parser.add_argument("--private-key-hash", required=True, help="SHA-256 of the private key (hex)")
    proof_parser.add_argument("--public-key", required=True, help="One-time public key (hex)")
    proof_parser.add_argument("--nonce", help="32-byte nonce (hex); random if omitted")
    proof_parser.add_argument("-s", "--signing-key", help="One-time key JSON file for the hardware signature")
    proof_parser.add_argument("-t", "--tx-hash", help="Transaction hash bound by the hardware signature")
    proof_parser.add_argument("--proof-type", default="ZeroKnowledge",
                              choices=["ZeroKnowledge", "HardwareAttestation", "CryptographicCommitment"])
    proof_parser.add_argument("-o", "--output", help="Output JSON file")

    # sign-request
    sign_parser = subparsers.add_parser("sign-request", help="Sign a protocol request")
    sign_parser.add_argument("-k", "--key", required=True, help="Caller key JSON file")
    sign_parser.add_argument("--operation", required=True, help="Operation name")
    sign_parser.add_argument("-p", "--params", help="Params JSON file")
    sign_parser.add_argument("-o", "--output", help="Output JSON file")

    # submit
    submit_parser = subparsers.add_parser("submit", help="Submit a signed request")
    submit_parser.add_argument("-r", "--request", required=True, help="Signed request JSON file")
    submit_parser.add_argument("--db", default=settings.DB_PATH, help="SQLite database path")
    submit_parser.add_argument("-o", "--output", help="Output JSON file")

    # verify-attestation
    va_parser = subparsers.add_parser("verify-attestation", help="Verify device attestation")
    va_parser.add_argument("-d", "--device-id", required=True, help="Device id (hex)")
    va_parser.add_argument("--db", default=settings.DB_PATH, help="SQLite database path")

    # verify-encumbrance
    ve_parser = subparsers.add_parser("verify-encumbrance", help="Verify key encumbrance")
    ve_parser.add_argument("-d", "--device-id", required=True, help="Device id (hex)")
    ve_parser.add_argument("-i", "--key-index", required=True, type=int, help="Key index")
    ve_parser.add_argument("-t", "--tx-hash", required=True, help="Transaction hash (hex)")
    ve_parser.add_argument("--db", default=settings.DB_PATH, help="SQLite database path")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show protocol counters")
    stats_parser.add_argument("--db", default=settings.DB_PATH, help="SQLite database path")

    # demo
    subparsers.add_parser("demo", help="Run demonstration")

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, json_format=settings.LOG_JSON)

    commands = {
        "keygen": cmd_keygen,
        "tx-hash": cmd_tx_hash,
        "proof": cmd_proof,
        "sign-request": cmd_sign_request,
        "submit": cmd_submit,
        "verify-attestation": cmd_verify_attestation,
        "verify-encumbrance": cmd_verify_encumbrance,
        "stats": cmd_stats,
        "demo": cmd_demo,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        return command(args)
    except ShiftError as e:
        print(f"✗ {e.code.value}: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
