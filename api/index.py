from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from credit_ledger.api import app
from credit_ledger.config import get_settings
from credit_ledger.logging_setup import configure_logging

configure_logging(get_settings().LOG_LEVEL)

app.root_path = "/api"

handler = Mangum(app)
