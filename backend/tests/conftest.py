import os
import sys
from pathlib import Path


# Keep tests deterministic and local-only.
os.environ["DMSCOUT_SKIP_DOTENV"] = "1"
os.environ["DMSCOUT_SYNC_PROCESSING"] = "1"
os.environ["DMSCOUT_DELIVERY_BACKEND"] = "mock"
os.environ["DMSCOUT_THROTTLE_CONSERVATIVE_SECONDS"] = "0"
os.environ["DMSCOUT_THROTTLE_MODERATE_SECONDS"] = "0"
os.environ["DMSCOUT_THROTTLE_AGGRESSIVE_SECONDS"] = "0"
os.environ["DMSCOUT_DEFAULT_EXTRACT_QUOTA"] = "150"
os.environ["DMSCOUT_DEFAULT_DM_QUOTA"] = "10"

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

TEST_DB_PATH = BACKEND_ROOT / "test_dmscout.db"
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
if TEST_DB_PATH.exists():
    TEST_DB_PATH.unlink()
