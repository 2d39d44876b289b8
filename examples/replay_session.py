"""Replay a recorded timing feed and print the kart ranking."""

import sys

from kartpace import FileBlobStore, LiveTimingEngine, ReplayFeed, StorageService
from kartpace.formatters import format_lap_time
from kartpace.incidents import get_incident_summary


def main(path: str) -> None:
    storage = StorageService(FileBlobStore("kartpace-data"))
    engine = LiveTimingEngine(storage=storage, replay=True)
    try:
        results = engine.ingest_all(ReplayFeed(path))
        laps = sum(len(r.recorded) for r in results)
        print(f"=== Replayed {len(results)} frames, {laps} laps recorded ===")

        print("\n=== Kart ranking ===")
        for rank, analysis in enumerate(engine.rank_karts(), start=1):
            stats = analysis.stats
            print(
                f"  {rank:>2}. Kart {analysis.kart_number:<4} "
                f"avg {format_lap_time(stats.avg_lap_time)}  "
                f"best {format_lap_time(stats.best_lap_time)}  "
                f"({stats.total_laps} laps, {analysis.confidence.level} confidence)"
            )

        if engine.last_batch is not None:
            print("\n=== Incidents (last session) ===")
            for run in engine.last_batch.runs:
                summary = get_incident_summary(engine.get_incidents(run.kart_number))
                print(f"  Kart {run.kart_number} ({run.name}): {summary}")

        engine.save_now()
    finally:
        engine.close()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: replay_session.py FRAMES.jsonl")
    main(sys.argv[1])
