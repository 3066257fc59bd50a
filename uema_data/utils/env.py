from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_ENV_PATH = REPO_ROOT / ".env"


@lru_cache(maxsize=1)
def load_env_file(dotenv_path: str | Path | None = None) -> bool:
    """Load Supabase coordinates and tuning knobs from .env once per process.

    Values already present in the environment win over the file.
    """

    if dotenv_path is None:
        if not DEFAULT_ENV_PATH.exists():
            return False
        path = DEFAULT_ENV_PATH
    else:
        path = Path(dotenv_path)
    return load_dotenv(dotenv_path=path, override=False)
