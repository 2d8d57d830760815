import contextlib
import json
import logging
import shutil
import time
import numpy as np
from pathlib import Path


@contextlib.contextmanager
def file_lock(lock_file: Path, timeout: int = 60, poll_interval: float = 0.1):
    """
    A cross-platform file locking mechanism using a directory (atomic on most OS).
    Prevents race conditions when writing to the progress file.
    """
    lock_dir = lock_file.parent / (lock_file.name + ".lock")
    start_time = time.time()

    while True:
        try:
            lock_dir.mkdir(exist_ok=False)
            break
        except FileExistsError:
            if time.time() - start_time > timeout:
                logging.warning(f"Lock timeout expired for {lock_file}. Forcing release.")
                shutil.rmtree(lock_dir, ignore_errors=True)
            time.sleep(poll_interval)

    try:
        yield
    finally:
        shutil.rmtree(lock_dir, ignore_errors=True)


class NumpyEncoder(json.JSONEncoder):
    """Handles serialization of NumPy types to JSON."""
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        return json.JSONEncoder.default(self, obj)
