import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# .env in the working directory, then the process environment
load_dotenv()

DB_FILENAME = "epub-reader.db"
CHECKSUM_FILENAME = "checksum.txt"
COVER_FILENAME = "cover.jpg"


def get_data_dir(override: Optional[os.PathLike] = None) -> Path:
    """Returns the root of the managed storage (library folders + database)."""
    if override is not None:
        return Path(override)
    return Path(os.getenv("EPUB_READER_DATA_DIR", "data"))


def get_library_dir(data_dir: Path) -> Path:
    """Returns the folder holding one sub-folder per imported book."""
    path = data_dir / "library"
    ensure_dir_exists(path)
    return path


def get_db_path(data_dir: Path) -> Path:
    ensure_dir_exists(data_dir)
    return data_dir / DB_FILENAME


def get_book_dir(library_dir: Path, source_path: Path) -> Path:
    """Book folders are named after the source filename stem."""
    return library_dir / source_path.stem


def ensure_dir_exists(path: Path) -> None:
    """Ensures that a directory exists."""
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
