from batchcodes.workers.tasks.batch_generation import generate_batch_codes

__all__ = [
    "generate_batch_codes",
]
