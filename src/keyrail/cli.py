"""
Keyrail CLI

Commands:
  serve     - Run the HTTP server
  suites    - List the registered signature suites
  demo      - Create a hybrid key pair for an agent and sign a message
  verify    - Verify a signature offline against a hex public key
"""

import argparse
import sys

from . import build_core
from .config import Settings
from .core import KeyEncoding, decode
from .crypto import default_registry
from .errors import KeyrailError
from .log_config import configure_logging

DEMO_AGENT = "BrowserAgent"
DEMO_MESSAGE = "Hello, quantum-safe world!"


def cmd_serve(args, settings: Settings):
    """Run the HTTP server."""
    from .api.server import run

    if args.port:
        settings = Settings.from_env(port=args.port)

    print(f"Starting Keyrail on {args.host}:{settings.port}")
    run(settings, host=args.host, reload=args.reload)


def cmd_suites(args, settings: Settings):
    """List registered suites."""
    registry = default_registry(settings)

    print(f"{'SUITE':<22} {'CATEGORY':<13} {'PK':>5} {'SIG':>5}  ALIASES")
    for descriptor in sorted(registry.supported_suites(), key=lambda d: d.suite_id):
        aliases = ", ".join(registry.aliases_for(descriptor.suite_id))
        print(f"{descriptor.suite_id:<22} {descriptor.category.value:<13} "
              f"{descriptor.public_key_size:>5} {descriptor.signature_size:>5}  {aliases}")


def cmd_demo(args, settings: Settings):
    """Walk through a hybrid classical + post-quantum signature."""
    core = build_core(settings)
    message = args.message.encode("utf-8")

    classical = core.create_key(args.agent, args.classical)
    pqc = core.create_key(args.agent, args.pqc)

    print(f"Agent: {args.agent}")
    for record in (classical, pqc):
        print(f"  {record.key_id}  {record.suite_id}  public key {len(record.public_key)} bytes")

    signatures = core.hybrid_sign([classical.key_id, pqc.key_id], message)
    print(f"\nMessage: {args.message!r}")
    for signature in signatures:
        print(f"  {signature.suite_id}: signature {len(signature)} bytes")

    valid = core.hybrid_verify([classical.key_id, pqc.key_id], message, signatures)
    print(f"\nHybrid verification: {'VALID' if valid else 'INVALID'}")

    profile = core.profile(args.agent)
    print(f"Profile mode: {profile.mode.value} ({profile.active_count} active keys)")

    if not valid:
        sys.exit(1)


def cmd_verify(args, settings: Settings):
    """Verify a signature with only public material."""
    registry = default_registry(settings)

    try:
        suite = registry.suite(args.suite)
        public_key = decode(args.public_key, KeyEncoding.HEX)
        signature = decode(args.signature, KeyEncoding.HEX)
    except KeyrailError as e:
        print(f"Error: {e}")
        sys.exit(2)

    try:
        suite.validate_public_key(public_key)
    except ValueError as e:
        print(f"Error: invalid {suite.suite_id} public key: {e}")
        sys.exit(2)

    if len(signature) != suite.signature_size:
        print(f"Error: {suite.suite_id} signatures are {suite.signature_size} bytes, got {len(signature)}")
        sys.exit(2)

    if suite.verify(public_key, args.message.encode("utf-8"), signature):
        print("Signature VALID")
    else:
        print("Signature INVALID")
        sys.exit(1)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Keyrail - Hybrid Classical/Post-Quantum Key Lifecycle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    # suites
    subparsers.add_parser("suites", help="List signature suites")

    # demo
    demo_parser = subparsers.add_parser("demo", help="Run a hybrid signing demo")
    demo_parser.add_argument("--agent", default=DEMO_AGENT)
    demo_parser.add_argument("--message", default=DEMO_MESSAGE)
    demo_parser.add_argument("--classical", default="classical-secp256k1")
    demo_parser.add_argument("--pqc", default="ml-dsa-65")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a signature offline")
    verify_parser.add_argument("--suite", required=True, help="Suite id or alias")
    verify_parser.add_argument("--public-key", required=True, help="Public key as hex")
    verify_parser.add_argument("--message", required=True, help="Signed message (UTF-8)")
    verify_parser.add_argument("--signature", required=True, help="Signature as hex")

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)

    commands = {
        "serve": cmd_serve,
        "suites": cmd_suites,
        "demo": cmd_demo,
        "verify": cmd_verify,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return

    try:
        command(args, settings)
    except KeyrailError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
