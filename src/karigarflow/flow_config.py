"""
KarigarFlow Configuration
Loads environment variables (and a local .env when present) and provides
defaults for the order ingestion pipeline.
"""

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Paths (src/karigarflow/flow_config.py -> project root is two levels up)
# ---------------------------------------------------------------------------
PACKAGE_ROOT = Path(__file__).parent
PROJECT_ROOT = PACKAGE_ROOT.parent.parent

env_file = PROJECT_ROOT / '.env'
if env_file.exists():
    load_dotenv(env_file)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_DIR: str = os.getenv("KARIGARFLOW_LOG_DIR", str(PROJECT_ROOT / "logs"))
LOG_LEVEL: str = os.getenv("KARIGARFLOW_LOG_LEVEL", "INFO").upper()
LOG_FILE_MAX_MB: int = int(os.getenv("KARIGARFLOW_LOG_MAX_MB", "10"))
LOG_FILE_BACKUP_COUNT: int = int(os.getenv("KARIGARFLOW_LOG_BACKUP_COUNT", "5"))

# ---------------------------------------------------------------------------
# Offline store
# ---------------------------------------------------------------------------
OFFLINE_DB_PATH: str = os.getenv(
    "KARIGARFLOW_OFFLINE_DB_PATH",
    str(PROJECT_ROOT / "data" / "karigarflow_offline.db"),
)
LAST_SYNC_KEY = "last_sync"

# ---------------------------------------------------------------------------
# Google Sheets remote store
# ---------------------------------------------------------------------------
GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID")
ORDERS_SHEET_NAME: str = os.getenv("KARIGARFLOW_ORDERS_SHEET_NAME", "Orders")
MASTER_DESIGNS_SHEET_NAME: str = os.getenv(
    "KARIGARFLOW_MASTER_DESIGNS_SHEET_NAME", "Master_Designs"
)

ORDER_COLUMNS = [
    "Order_No",
    "Order_Type",
    "Design_Code",
    "Generic_Name",
    "Karigar_Name",
    "Karigar_ID",
    "Weight",
    "Size",
    "Qty",
    "Remarks",
    "Status",
    "Is_Customer_Order",
    "Upload_Date",
    "Created_At",
    "Last_Status_Change",
]

MASTER_DESIGN_COLUMNS = [
    "Design_Code",
    "Generic_Name",
    "Karigar_Name",
    "Karigar_ID",
    "Is_Active",
]

_credentials_path = None  # Lazy loaded


def resolve_credentials():
    """
    Resolve Google Sheets credentials.

    Priority order:
    1. GOOGLE_SHEETS_CREDENTIALS_FILE (absolute or relative to project root)
    2. config/credentials.json in the project root
    3. GOOGLE_SHEETS_CREDENTIALS_JSON (written to a temp file)
    4. None -> Application Default Credentials
    """
    creds_file = os.getenv("GOOGLE_SHEETS_CREDENTIALS_FILE")
    if creds_file:
        if not os.path.isabs(creds_file):
            creds_file = str(PROJECT_ROOT / creds_file)
        if os.path.exists(creds_file):
            return creds_file

    default_path = PROJECT_ROOT / "config" / "credentials.json"
    if default_path.exists():
        return str(default_path)

    creds_json = os.getenv("GOOGLE_SHEETS_CREDENTIALS_JSON")
    if creds_json:
        temp_path = Path(tempfile.gettempdir()) / "karigarflow_credentials.json"
        temp_path.write_text(creds_json)
        return str(temp_path)

    return None


def get_credentials_path():
    """Get credentials path (lazy loaded)"""
    global _credentials_path
    if _credentials_path is None:
        _credentials_path = resolve_credentials()
    return _credentials_path


# ---------------------------------------------------------------------------
# File inputs
# ---------------------------------------------------------------------------
SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")
PDF_EXTENSIONS = (".pdf",)

# Row errors quoted in a NoValidRowsError message before "and N more"
MAX_ROW_ERRORS_IN_MESSAGE: int = 5

# A PDF line with at least this many header keywords is a table header
PDF_HEADER_KEYWORDS = [
    "ORDER NO",
    "ORDER TYPE",
    "DESIGN CODE",
    "WEIGHT",
    "SIZE",
    "QTY",
    "QUANTITY",
    "REMARKS",
    "STATUS",
]
PDF_HEADER_KEYWORD_THRESHOLD = 3

UNASSIGNED_KARIGAR = "Unassigned"
