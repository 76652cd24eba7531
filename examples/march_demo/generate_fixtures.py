#!/usr/bin/env python3
"""Generate the consumptions file for the March 2026 demo.

Writes examples/march_demo/consumptions.jsonl next to companies.yaml.
Seeded, so re-running produces the same file.

Usage:
    python3 examples/march_demo/generate_fixtures.py
    cafeteria-billing daily -c examples/march_demo/companies.yaml \
        -e examples/march_demo/consumptions.jsonl --company acme --period 2026-03
"""

from __future__ import annotations

import datetime
import json
import random
from pathlib import Path
from zoneinfo import ZoneInfo

DEMO_DIR = Path(__file__).resolve().parent
OUT = DEMO_DIR / "consumptions.jsonl"
TZ = ZoneInfo("America/Mexico_City")

# (company_id, weekday meals range, weekend meals range)
VOLUMES = [
    ("acme", (240, 330), (60, 130)),
    ("globex", (20, 60), (0, 10)),
    ("initech", (90, 150), (0, 0)),
]


def main() -> None:
    rng = random.Random(2026)
    records = []
    for day in range(1, 32):
        date = datetime.date(2026, 3, day)
        weekend = date.weekday() >= 5
        for company_id, weekday_range, weekend_range in VOLUMES:
            lo, hi = weekend_range if weekend else weekday_range
            for i in range(rng.randint(lo, hi)):
                # three shifts; the night one spills past midnight UTC
                hour = rng.choice([7, 13, 23])
                local = datetime.datetime(2026, 3, day, hour, rng.randint(0, 59), tzinfo=TZ)
                records.append({
                    "id": f"{company_id}-{day:02d}-{i:03d}",
                    "companyId": company_id,
                    "timestamp": local.astimezone(datetime.timezone.utc).isoformat(),
                    "employeeId": "anonymous" if rng.random() < 0.03 else f"{company_id}-emp-{rng.randint(1, 400)}",
                    "employeeNumber": str(rng.randint(1000, 9999)),
                    "voided": rng.random() < 0.01,
                })

    with open(OUT, "w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec) + "\n")
    print(f"Wrote {len(records)} consumptions to {OUT}")


if __name__ == "__main__":
    main()
