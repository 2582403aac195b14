"""
Create or update a viewer's entitlement row (operators only; billing normally owns it). Run from project root:
  python -m app.scripts.grant_credits VIEWER_ID CREDITS [tier]
Example:
  python -m app.scripts.grant_credits 7f3c2a10-0000-4000-8000-000000000001 5 pro
"""
import argparse
import sys

from app.core.database import SessionLocal
from app.models import ScanCredit


def main() -> int:
    parser = argparse.ArgumentParser(description="Set scan credits and tier for a viewer.")
    parser.add_argument("viewer_id", help="Viewer id (JWT 'sub' claim)")
    parser.add_argument("credits", type=int, help="Remaining scan credits (>= 0)")
    parser.add_argument("tier", nargs="?", default="free", choices=["free", "pro"])
    args = parser.parse_args()

    viewer_id = args.viewer_id.strip()
    if not viewer_id or len(viewer_id) > 255:
        print("Invalid viewer id length.", file=sys.stderr)
        return 1
    if args.credits < 0:
        print("Credits must be zero or positive.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        row = db.get(ScanCredit, viewer_id)
        if row is None:
            row = ScanCredit(viewer_id=viewer_id)
            db.add(row)
        row.credits_remaining = args.credits
        row.package_type = args.tier
        db.commit()
        print(f"Viewer '{viewer_id}' now has {args.credits} credits on tier '{args.tier}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
