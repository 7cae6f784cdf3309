from pathlib import Path
from dotenv import load_dotenv
import os

load_dotenv()

BASE_DIR = Path(__file__).parent

# Data directory (gitignored)
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/transit.db")

# GTFS Static
# Feeds can be found at https://www.transit.land/feeds
GTFS_STATIC_URL: str = os.getenv("GTFS_STATIC_URL", "")
GTFS_REFRESH_HOURS: int = int(os.getenv("GTFS_REFRESH_HOURS", "24"))

# Map output (relative paths resolve against the working directory)
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "Output"))
MAP_OUTPUT_PATH = Path(os.getenv("MAP_OUTPUT_PATH", str(OUTPUT_DIR / "map.html")))

# Stop visit counting
COUNT_WORKERS: int = int(os.getenv("COUNT_WORKERS", "1"))        # >1 enables a process pool
COUNT_PARTITIONS: int = int(os.getenv("COUNT_PARTITIONS", "1"))

# API
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]
INGEST_API_KEY: str = os.getenv("INGEST_API_KEY", "")
