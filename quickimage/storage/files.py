import uuid
from pathlib import Path

import aiofiles
import aiofiles.os


async def write_atomic(path: Path, data: bytes) -> Path:
    """
    Whole-file replace: write a hidden temp file in the same directory,
    then rename over the target. Readers see the old file or the new one, never a partial write.
    """
    await aiofiles.os.makedirs(path.parent, exist_ok=True)
    tmp_path = path.parent / f".{path.name}.{uuid.uuid4().hex}.tmp"

    try:
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)
        raise

    return path


async def remove_if_exists(path: Path) -> bool:
    if await aiofiles.os.path.exists(path):
        await aiofiles.os.remove(path)
        return True
    return False
