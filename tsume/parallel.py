"""
Parallel puzzle generation.

Each worker is a separate process with its own engine session and its own
output file in a temporary directory. Nothing is shared while they run;
once every worker has exited, the part files are merged, sorted and
deduplicated into the final output.
"""

import shutil
import tempfile
import traceback
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from tsume.config import GeneratorConfig
from tsume.generator import WorkerResult, run_generator


@dataclass
class WorkerConfig:
    """Job description for one worker process (must pickle)."""
    worker_id: int
    output_path: str
    count: int
    config: GeneratorConfig


@dataclass
class BatchResult:
    """Summary of a parallel run."""
    output_path: str
    requested: int
    workers: int
    per_worker: int
    candidates: int = 0
    unique: int = 0
    worker_results: list[WorkerResult] = field(default_factory=list)

    @property
    def failed_workers(self) -> int:
        return sum(1 for r in self.worker_results if r.error)


def per_worker_share(total: int, workers: int) -> int:
    """Puzzles requested from each worker (ceiling division)."""
    if workers < 1:
        raise ValueError("At least one worker is required")
    if total < 0:
        raise ValueError("Puzzle count cannot be negative")
    return (total + workers - 1) // workers


def run_worker(worker: WorkerConfig) -> WorkerResult:
    """Process entry point: run one generator into its private part file."""
    return run_generator(worker.output_path, worker.count, worker.config,
                         worker_id=worker.worker_id)


def merge_outputs(part_paths: list[Path | str], output_path: Path | str) -> tuple[int, int]:
    """
    Merge part files into output_path, sorted with exact duplicates removed.

    Missing part files are skipped. Returns (candidate_lines, unique_lines).
    """
    lines = []
    for part in part_paths:
        part = Path(part)
        if not part.exists():
            continue
        with open(part, "r") as f:
            lines.extend(line.strip() for line in f if line.strip())

    unique = sorted(set(lines))
    with open(output_path, "w") as f:
        for line in unique:
            f.write(f"{line}\n")
    return len(lines), len(unique)


def run_parallel(output_path: Path | str, total: int, workers: int,
                 config: GeneratorConfig) -> BatchResult:
    """
    Generate `total` puzzles across `workers` processes and merge the results.

    The final count can fall short of `total`: workers give up on slots,
    failed workers stop early, and duplicates across workers are removed.
    """
    per_worker = per_worker_share(total, workers)
    batch = BatchResult(output_path=str(output_path), requested=total, workers=workers,
                        per_worker=per_worker)
    if per_worker == 0:
        merge_outputs([], output_path)
        print(f"Done: 0 unique tsume -> {output_path}", flush=True)
        return batch

    print(f"Generating {total} tsume with {workers} workers ({per_worker} each)...", flush=True)

    tmp_dir = Path(tempfile.mkdtemp(prefix="tsume-"))
    try:
        jobs = [
            WorkerConfig(worker_id=i, output_path=str(tmp_dir / f"part_{i}.sfen"),
                         count=per_worker, config=config)
            for i in range(1, workers + 1)
        ]

        with ProcessPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(run_worker, job): job for job in jobs}

            for future in as_completed(futures):
                job = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    print(f"  Error in worker {job.worker_id}: {e}", flush=True)
                    traceback.print_exc()
                    result = WorkerResult(worker_id=job.worker_id, output_path=job.output_path,
                                          requested=job.count, error=str(e))
                batch.worker_results.append(result)

                status = f" [stopped: {result.error}]" if result.error else ""
                print(f"Worker {result.worker_id:2d}: {result.produced}/{result.requested} puzzles "
                      f"in {result.games} games{status}", flush=True)

        batch.worker_results.sort(key=lambda r: r.worker_id)
        batch.candidates, batch.unique = merge_outputs([job.output_path for job in jobs], output_path)
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)

    print(f"Done: {batch.unique} unique tsume -> {output_path}", flush=True)
    return batch
