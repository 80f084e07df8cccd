"""Array-job barrier demo.

Run one copy per task, e.g. ``srun -n 4 python examples/array_job_demo.py``,
or locally::

    for r in 0 1 2; do PARALLEL_RANK=$r python examples/array_job_demo.py & done; wait
"""
from __future__ import annotations

import random
import sys
import time

from workstack import Coordinator, WorkStackConfig


def main() -> int:
    cfg = WorkStackConfig.from_env()
    with Coordinator(cfg) as coord:
        print(f"{coord.id}: master={coord.is_master} registered={coord.n_registered}")
        for step in range(3):
            time.sleep(random.uniform(0.0, 0.5))  # uneven work
            coord.log(f"step {step} done")
            if not coord.barrier("step"):
                return 1
            print(f"{coord.id}: passed barrier {step}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
