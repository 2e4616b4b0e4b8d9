"""
File creation with permissions applied at open time.

Keys and bundles are never visible with default permissions: the mode is
passed to os.open and then forced with fchmod so the umask cannot widen or
narrow it.
"""

import os

from errors import FileSystemError

PRIVATE = 0o600
PUBLIC = 0o644


def write_file(path, data, mode=PRIVATE, exclusive=True):
    """
    Write bytes to path with the given mode.

    Args:
        path: Destination file
        data: Bytes to write
        mode: Permission bits applied at creation
        exclusive: Refuse to touch an existing file (O_EXCL)

    Raises:
        FileSystemError: If the file exists (exclusive) or cannot be written
    """
    flags = os.O_WRONLY | os.O_CREAT
    flags |= os.O_EXCL if exclusive else os.O_TRUNC
    try:
        fd = os.open(path, flags, mode)
    except FileExistsError:
        raise FileSystemError(f"File already exists: {path}",
                              detail=f"Refusing to overwrite '{path}'.")
    except OSError as e:
        raise FileSystemError(f"Cannot create file: {path}", detail=str(e))

    with os.fdopen(fd, "wb") as f:
        os.fchmod(f.fileno(), mode)
        f.write(data)


def read_file(path, missing_ok=False):
    """
    Return the bytes of path.

    Returns None instead when missing_ok is set and the file does not exist.

    Raises:
        FileSystemError: If the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError as e:
        if missing_ok:
            return None
        raise FileSystemError(f"Cannot read file: {path}", detail=str(e))
    except OSError as e:
        raise FileSystemError(f"Cannot read file: {path}", detail=str(e))


def append_line(path, line, mode=PRIVATE):
    """Append a text line, creating the file with mode if needed."""
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, mode)
    except OSError as e:
        raise FileSystemError(f"Cannot open file: {path}", detail=str(e))
    with os.fdopen(fd, "a", encoding="utf-8") as f:
        os.fchmod(f.fileno(), mode)
        f.write(line + "\n")


def make_dir(path):
    """Create a directory (and parents) if absent."""
    try:
        os.makedirs(path, exist_ok=True)
    except FileExistsError:
        raise FileSystemError(f"Path exists and is not a directory: {path}")
    except OSError as e:
        raise FileSystemError(f"Cannot create directory: {path}", detail=str(e))


def remove_file(path):
    """Delete path if it exists. Returns True when a file was removed."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise FileSystemError(f"Cannot remove file: {path}", detail=str(e))
    return True
