"""Print the gateway's SAML Service Provider metadata for IdP registration.

Usage:
    python -m gateway.print_sp_metadata [--output sp-metadata.xml]
"""
import argparse
import sys
from pathlib import Path

from gateway.auth.saml import generate_sp_metadata
from gateway.core.config import get_settings
from gateway.core.errors import GatewayError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--output", type=Path, help="write the XML here instead of stdout")
    args = parser.parse_args(argv)

    try:
        metadata, errors = generate_sp_metadata(get_settings())
    except GatewayError as exc:
        print(f"Cannot build SP metadata: {exc.detail}", file=sys.stderr)
        return 1
    if errors:
        print("Metadata validation errors:", errors, file=sys.stderr)
        return 1
    if args.output:
        args.output.write_text(metadata, encoding="utf-8")
    else:
        print(metadata)
    return 0


if __name__ == "__main__":
    sys.exit(main())
