"""Allow running the worker with `python -m proofpack.worker`."""

from proofpack.worker.main import run

if __name__ == "__main__":
    run()
