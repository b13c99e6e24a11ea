# veosig/config.py
import os
from pathlib import Path
from dotenv import load_dotenv

class Config:
    """
    Central Configuration.
    Uses pathlib to find paths relative to THIS file, not the current working directory.
    """

    # --- PATH SETUP ---
    # veosig/config.py -> project root is two levels up
    BASE_DIR = Path(__file__).resolve().parent.parent

    # Path to .env (optional for this tool, all settings have defaults)
    ENV_PATH = BASE_DIR / "local_config" / ".env"

    if ENV_PATH.exists():
        load_dotenv(ENV_PATH)

    # Path for outputs (Logs, JSONs)
    OUTPUT_DIR = Path(os.getenv("VEOSIG_OUTPUT_DIR", str(BASE_DIR / "output")))

    # --- Tool Identifier ---
    VEOSIG_ID = "VEOSigCheck v0.1"

    # --- Verification Behavior ---
    # Only validate the outer layer of an onion VEO
    ONE_LAYER = os.getenv("ONE_LAYER", "False").lower() in ('true', '1', 't')
    # Add signature/certificate dumps to the diagnostics
    VERBOSE = os.getenv("VERBOSE", "False").lower() in ('true', '1', 't')

    READ_BUFFER_SIZE = int(os.getenv("READ_BUFFER_SIZE", 65536))
    LOCK_TIMEOUT = float(os.getenv("LOCK_TIMEOUT", 5))

    # --- File Paths ---
    LOG_FILE = str(OUTPUT_DIR / "veosig.log")
    RESULTS_FILE = str(OUTPUT_DIR / "signature_results.json")
