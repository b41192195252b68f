import os
from pathlib import Path

def get_project_root() -> Path:
    """Returns the root directory of the project."""
    # This file is in summary_reader/utils/paths.py
    # Root is 3 levels up
    return Path(__file__).resolve().parent.parent.parent

def get_data_dir() -> Path:
    """Returns the data directory, overridable with SUMMARY_READER_DATA_DIR."""
    override = os.getenv("SUMMARY_READER_DATA_DIR")
    if override:
        return Path(override)
    return get_project_root() / "data"

def get_library_dir() -> Path:
    """Returns the folder holding one sub-folder per uploaded book."""
    path = get_data_dir() / "library"
    ensure_dir_exists(path)
    return path

def get_config_path() -> Path:
    return get_data_dir() / "config.json"

def ensure_dir_exists(path: Path) -> None:
    """Ensures that a directory exists."""
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
