#!/usr/bin/env python
"""Generate the OpenAPI spec JSON and optionally track its hash.

Usage:
  python -m scripts.generate_spec --out backend/openapi.json
  python -m scripts.generate_spec --update-hash
  python -m scripts.generate_spec --check

Options:
  --out PATH        Write full spec JSON to PATH (directories auto-created)
  --update-hash     Recompute and overwrite tests/openapi_spec_hash.txt
  --check           Exit non-zero if current spec hash != snapshot (CI check)

Without flags, prints the current hash to stdout.

Exit Codes:
  0 success / in-check mode hash matches
  2 mismatch (or missing snapshot) in --check mode
"""
from __future__ import annotations
import argparse, json, hashlib, pathlib, sys

BACKEND = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))
SNAPSHOT = BACKEND / 'tests' / 'openapi_spec_hash.txt'

from distribution.openapi_builder import build_openapi_spec  # noqa: E402


def compute_spec_and_hash():
    spec = build_openapi_spec()
    blob = json.dumps(spec, sort_keys=True, separators=(',', ':')).encode()
    return spec, hashlib.sha256(blob).hexdigest()


def main(argv: list[str]) -> int:
    p = argparse.ArgumentParser(description="Generate deterministic OpenAPI spec")
    p.add_argument('--out', dest='out', help='Path to write JSON spec')
    p.add_argument('--update-hash', action='store_true', help='Overwrite snapshot hash file')
    p.add_argument('--check', action='store_true', help='Check current hash vs snapshot and exit 2 on mismatch')
    args = p.parse_args(argv)

    spec, h = compute_spec_and_hash()

    if args.out:
        out_path = pathlib.Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(spec, indent=2, sort_keys=True) + '\n')
        print(f"Wrote spec JSON to {out_path} ({len(json.dumps(spec))} bytes)")

    if args.check:
        if not SNAPSHOT.exists():
            print(f"No snapshot at {SNAPSHOT}; run with --update-hash first", file=sys.stderr)
            return 2
        expected = SNAPSHOT.read_text().strip()
        if h != expected:
            print(f"Spec hash mismatch: expected={expected} current={h}", file=sys.stderr)
            return 2
        print(f"Spec hash OK: {h}")

    if args.update_hash:
        SNAPSHOT.write_text(h + '\n')
        print(f"Updated snapshot hash -> {h}")

    if not args.out and not args.update_hash and not args.check:
        print(h)

    return 0


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main(sys.argv[1:]))
