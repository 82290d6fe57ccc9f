"""General utils functions"""

import os
from pathlib import Path
from typing import List, Union, Any


def as_list(input: Union[List, Any]):
    return input if isinstance(input, List) else [input]


# from: https://stackoverflow.com/a/1094933
def sizeof_fmt(num: float, suffix: str = "B"):
    if abs(num) < 1024:
        return f"{int(num)}{suffix}"
    for unit in ("", "Ki", "Mi", "Gi", "Ti", "Pi", "Ei", "Zi"):
        if abs(num) < 1024:
            return f"{num:3.1f}{unit}{suffix}"
        num /= 1024
    return f"{num:.1f}Yi{suffix}"


def directory_size(path: Path) -> int:
    """Return the total size in bytes of all regular files below ``path``.

    Symlinks are not followed. Files vanishing during the walk are ignored.
    """
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            file_path = os.path.join(root, name)
            try:
                if not os.path.islink(file_path):
                    total += os.path.getsize(file_path)
            except OSError:
                continue
    return total
