# Ensure tests import the gateway package from this checkout first, even when
# pytest is started from another directory.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
