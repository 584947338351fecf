#!/usr/bin/env python3
"""
Aggregate respondents' raw sensor data for a stimulus and publish the result.

Typical usage:
  python scripts/aggregate_stimulus.py --token $TOKEN --study-id S1 \
      --stimulus-id 42 --segment-id All --sensor "Eyetracker||ET||Tobii Pro Glasses 3"

Publishes two artifacts to the study-data service:
- "Aggregated Raw Data (<name>)": per-channel means across respondents
- "Falloff (<name>)": respondents contributing at each timestamp

With --dry-run nothing is uploaded; use --output-dir to keep CSV copies.
"""

import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rawagg.config import get_config  # noqa: E402
from rawagg.processing.processor import StimulusAggregator  # noqa: E402
from rawagg.studydata.client import StudyDataClient  # noqa: E402


def main() -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Aggregate raw sensor data across respondents for a stimulus")
    parser.add_argument("--token", default=None, help="Session token (defaults to RAWAGG_API_TOKEN)")
    parser.add_argument("--study-id", required=True, help="Study ID")
    parser.add_argument("--stimulus-id", required=True, help="Stimulus ID")
    parser.add_argument("--segment-id", required=True, help="Segment ID")
    parser.add_argument("--sensor", required=True, help="Sensor key 'Family||Name||Instance'")
    parser.add_argument("--workers", type=int, default=None, help="Parallel respondent normalization")
    parser.add_argument("--dry-run", action="store_true", help="Process but do not publish")
    parser.add_argument("--output-dir", type=Path, default=None, help="Also write both artifacts as CSV here")
    args = parser.parse_args()

    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.workers is not None:
        config.aggregation.max_workers = args.workers

    with StudyDataClient(token=args.token, config=config.studydata) as client:
        aggregator = StimulusAggregator(client, config=config.aggregation)
        try:
            result = aggregator.run(
                args.study_id,
                args.stimulus_id,
                args.segment_id,
                args.sensor,
                publish=not args.dry_run,
            )
        except ValueError as e:
            parser.error(str(e))

    if result.warning:
        print(f"⚠️  {result.warning}")
        return 2

    if args.output_dir is not None:
        args.output_dir.mkdir(parents=True, exist_ok=True)
        for label, data in ((result.raw_data_label, result.raw_data), (result.falloff_label, result.falloff)):
            path = args.output_dir / f"{label}.csv"
            data.to_csv(path, index=False)
            print(f"  Wrote {path}")

    print("")
    print("✅ Aggregation complete" if result.published else "✅ Aggregation complete (dry run)")
    print(json.dumps(result.to_summary_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
