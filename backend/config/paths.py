"""
Centralized path configuration for the Auto-Deploy dashboard
Ensures all modules resolve data, log and frontend locations the same way
"""

import os

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# The /app/data directory is mounted as a volume in Docker
DATA_DIR = os.getenv('AUTODEPLOY_DATA_DIR', '/app/data')

# For development/testing outside Docker
if 'AUTODEPLOY_DATA_DIR' not in os.environ and not os.path.exists('/app'):
    DATA_DIR = './data'

LOG_DIR = os.path.join(DATA_DIR, 'logs')

# Bundled single-page frontend (index.html plus any static assets)
FRONTEND_DIR = os.getenv(
    'AUTODEPLOY_FRONTEND_DIR',
    os.path.join(os.path.dirname(BACKEND_DIR), 'frontend')
)


def ensure_data_dirs():
    """Create data directories if they don't exist"""
    for directory in [DATA_DIR, LOG_DIR]:
        os.makedirs(directory, exist_ok=True)
        try:
            os.chmod(directory, 0o700)
        except OSError:
            pass  # May not have permission in some environments
